import asyncio
from io import BytesIO
from typing import Callable, Dict, List, Optional, Tuple
from openpyxl import Workbook
from chefdeck.models.shared.enums import NotificationLevel
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle, InventoryItem, InventorySheet, LockHolder
from chefdeck.services.inventory.locking import LockResult, evaluate_lock
from chefdeck.sync.clock import Clock
from chefdeck.sync.exceptions import InventoryAPIError
from chefdeck.sync.notifier import Notifier

IVAN = LockHolder(id=7, name="Ivan")
ANNA = LockHolder(id=9, name="Anna")
ADMIN = LockHolder(id=1, name="Admin")


async def settle(rounds: int = 50):
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock(Clock):
    """Clock that only moves when a test calls advance()"""

    def __init__(self):
        self._now = 0.0
        self._sleepers: List[Tuple[float, asyncio.Future]] = []

    def now(self) -> float:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        self._sleepers.append((self._now + seconds, future))
        await future

    async def advance(self, seconds: float) -> None:
        target = self._now + seconds
        await settle()
        while True:
            due = [deadline for deadline, future in self._sleepers if deadline <= target and not future.done()]
            if not due:
                break
            self._now = max(self._now, min(due))
            for deadline, future in self._sleepers:
                if deadline <= self._now and not future.done():
                    future.set_result(None)
            self._sleepers = [(d, f) for d, f in self._sleepers if not f.done()]
            await settle()
        self._now = target
        await settle()


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages: List[Tuple[NotificationLevel, str]] = []

    def notify(self, message: str, level: NotificationLevel = NotificationLevel.INFO) -> None:
        self.messages.append((level, message))

    def levels(self) -> List[NotificationLevel]:
        return [level for level, _ in self.messages]


class FakeInventoryAPI:
    """In-memory stand-in for InventoryAPIClient with the same method surface"""

    def __init__(self, cycles: Optional[List[InventoryCycle]] = None, catalog: Optional[List[GlobalInventoryItem]] = None):
        self.documents: Dict[str, dict] = {c.id: c.to_document() for c in cycles or []}
        self.catalog: List[GlobalInventoryItem] = list(catalog or [])
        self.upserts: List[InventoryCycle] = []
        self.unlocks: List[Tuple[str, str]] = []
        self.list_calls = 0
        self.fail_when: Optional[Callable[[InventoryCycle], bool]] = None
        self.list_gate: Optional[asyncio.Event] = None

    def stored(self, cycle_id: str) -> InventoryCycle:
        return InventoryCycle.model_validate(self.documents[cycle_id])

    async def list_cycles(self) -> List[InventoryCycle]:
        self.list_calls += 1
        snapshot = [InventoryCycle.model_validate(doc) for doc in self.documents.values()]
        if self.list_gate is not None:
            await self.list_gate.wait()
        return sorted(snapshot, key=lambda c: c.date, reverse=True)

    async def upsert_cycle(self, cycle: InventoryCycle) -> None:
        if self.fail_when is not None and self.fail_when(cycle):
            raise InventoryAPIError("POST /inventory/cycle -> 500: boom", status_code=500)
        self.upserts.append(cycle.model_copy(deep=True))
        self.documents[cycle.id] = cycle.to_document()

    async def lock(self, cycle_id: str, sheet_id: str, user: LockHolder) -> LockResult:
        cycle = self.stored(cycle_id)
        sheet = cycle.find_sheet(sheet_id)
        result = evaluate_lock(sheet, user)
        if result.granted:
            sheet.locked_by = user
            self.documents[cycle_id] = cycle.to_document()
        return result

    async def unlock(self, cycle_id: str, sheet_id: str) -> None:
        self.unlocks.append((cycle_id, sheet_id))
        cycle = self.stored(cycle_id)
        cycle.find_sheet(sheet_id).locked_by = None
        self.documents[cycle_id] = cycle.to_document()

    async def list_global_items(self) -> List[GlobalInventoryItem]:
        return list(self.catalog)

    async def upsert_global_items(self, items: List[GlobalInventoryItem]) -> int:
        by_code = {item.code: item for item in self.catalog}
        for item in items:
            by_code[item.code] = item
        self.catalog = list(by_code.values())
        return len({item.code for item in items})

    async def clear_archive(self) -> int:
        archived = [cid for cid, doc in self.documents.items() if doc.get("isFinalized")]
        for cycle_id in archived:
            del self.documents[cycle_id]
        return len(archived)


def make_cycle(cycle_id: str = "c1", locked_by: Optional[LockHolder] = None, **kwargs) -> InventoryCycle:
    """Working cycle with a kitchen and a bar sheet; milk is on both"""
    kitchen = InventorySheet(
        id="kitchen",
        title="Кухня",
        locked_by=locked_by,
        items=[
            InventoryItem(id="milk-k", code="1001", name="Молоко", unit="л"),
            InventoryItem(id="cheese", code="1002", name="Сыр", unit="кг"),
        ],
    )
    bar = InventorySheet(
        id="bar",
        title="Бар",
        items=[InventoryItem(id="milk-b", code="1001", name="Молоко", unit="л")],
    )
    fields = {"id": cycle_id, "date": 1735689600000, "sheets": [kitchen, bar], "created_by": "Admin"}
    fields.update(kwargs)
    return InventoryCycle(**fields)


CATALOG = [
    GlobalInventoryItem(code="1001", name="Молоко", unit="л"),
    GlobalInventoryItem(code="1002", name="Сыр", unit="кг"),
    GlobalInventoryItem(code="1003", name="Сахар", unit="кг"),
]


def workbook_bytes(sheets) -> bytes:
    """xlsx content from [(title, rows)]"""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for title, rows in sheets:
        worksheet = workbook.create_sheet(title)
        for row in rows:
            worksheet.append(row)
    output = BytesIO()
    workbook.save(output)
    return output.getvalue()
