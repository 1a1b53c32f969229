import asyncio
import logging
from typing import Callable, Iterable, List, Optional, Set, Tuple, Union
from uuid import uuid4
from chefdeck.core.config import settings
from chefdeck.models.shared.enums import NotificationLevel, SheetStatus
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle, InventoryItem, InventorySheet, LockHolder
from chefdeck.services.inventory.cycle_aggregator import ProductTotal, aggregate
from chefdeck.services.inventory.cycle_finalizer import build_archive_cycle, reset_working_cycle
from chefdeck.services.inventory.locking import LockResult
from chefdeck.sync.api_client import InventoryAPIClient
from chefdeck.sync.clock import Clock
from chefdeck.sync.command_queue import ItemCommandQueue
from chefdeck.sync.draft_store import DraftStore, MemoryDraftStore, draft_key
from chefdeck.sync.exceptions import (
    FinalizeError, InventoryAPIError, InventoryValidationError, SheetLockedError
)
from chefdeck.sync.notifier import Notifier
from chefdeck.sync.quantity import normalize_quantity_text, parse_quantity
from chefdeck.sync.sync_gate import SyncGate
from chefdeck.utils.date_time_serializer import current_millis
from chefdeck.utils.inventory_exporter import InventoryWorkbookExporter
from chefdeck.utils.inventory_importer import parse_catalog_workbook, parse_station_workbook

logger = logging.getLogger(__name__)

ItemKey = Tuple[str, str, str]
Mutation = Callable[[InventoryCycle], None]


class InventoryEngine:
    """
    Client-side state of one user's inventory session.

    Holds the working cycle, pushes local edits as whole-cycle writes and
    merges server snapshots by polling. Quantity edits are debounced per
    item, kept as drafts until the write is confirmed, and suppress polling
    for a short window so a stale snapshot cannot overwrite fresh input.
    All writes go through one lock and always send the latest local copy.
    """

    def __init__(
        self,
        api: InventoryAPIClient,
        user: LockHolder,
        is_admin: bool = False,
        *,
        draft_store: Optional[DraftStore] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Clock] = None,
        gate_seconds: Optional[float] = None,
        debounce_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ):
        self.api = api
        self.user = user
        self.is_admin = is_admin
        self.clock = clock or Clock()
        self.gate = SyncGate(gate_seconds, self.clock)
        self.drafts = draft_store or MemoryDraftStore()
        self.notifier = notifier or Notifier()
        self.commands = ItemCommandQueue(self._sync_item, delay=debounce_seconds, clock=self.clock)
        self.poll_interval = settings.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.exporter = InventoryWorkbookExporter()

        self.cycles: List[InventoryCycle] = []
        self.active_cycle: Optional[InventoryCycle] = None
        self.catalog: List[GlobalInventoryItem] = []

        self._write_lock = asyncio.Lock()
        self._busy = 0
        self._background: Set[asyncio.Task] = set()
        self._poll_task: Optional[asyncio.Task] = None

    # === State ===

    @property
    def is_busy(self) -> bool:
        return self._busy > 0 or self.commands.busy or bool(self._background)

    def can_edit(self, sheet_id: str) -> bool:
        sheet = self.active_cycle.find_sheet(sheet_id) if self.active_cycle else None
        if sheet is None:
            return False
        return self.is_admin or (sheet.locked_by is not None and sheet.locked_by.id == self.user.id)

    def _apply_snapshot(self, cycles: List[InventoryCycle]) -> None:
        self.cycles = cycles
        self.active_cycle = next((c for c in cycles if not c.is_finalized), None)

    def _require_sheet(self, sheet_id: str) -> Tuple[InventoryCycle, InventorySheet]:
        if self.active_cycle is None:
            raise InventoryValidationError("No active inventory cycle")
        sheet = self.active_cycle.find_sheet(sheet_id)
        if sheet is None:
            raise InventoryValidationError(f"Sheet {sheet_id} not found")
        return self.active_cycle, sheet

    def _require_edit_rights(self, sheet: InventorySheet) -> None:
        if self.is_admin:
            return
        if sheet.locked_by is None or sheet.locked_by.id != self.user.id:
            raise SheetLockedError(sheet.locked_by)

    def _require_admin(self, action: str) -> None:
        if not self.is_admin:
            raise InventoryValidationError(f"Only an administrator can {action}")

    # === Loading and polling ===

    async def load(self) -> bool:
        """Initial load: cycles, catalog, then drafts left over from an earlier session"""
        self._busy += 1
        try:
            cycles = await self.api.list_cycles()
            catalog = await self.api.list_global_items()
        except InventoryAPIError as e:
            logger.error(f"❌ Inventory load failed: {str(e)}")
            self.notifier.notify("Ошибка загрузки", NotificationLevel.ERROR)
            return False
        finally:
            self._busy -= 1

        self._apply_snapshot(cycles)
        self.catalog = catalog
        await self._restore_drafts()
        logger.info(f"✅ Loaded {len(cycles)} cycles, {len(catalog)} catalog items")
        return True

    async def _restore_drafts(self) -> None:
        cycle = self.active_cycle
        if cycle is None:
            return
        for sheet in cycle.sheets:
            for item in sheet.items:
                key = draft_key(cycle.id, sheet.id, item.id)
                text = await self.drafts.get(key)
                if text is None:
                    continue
                value = parse_quantity(text)
                if value == item.actual:
                    await self.drafts.clear(key)
                    continue
                logger.info(f"📝 Restoring unsent draft for item {item.id}: {text!r}")
                item.actual = value
                self.gate.lock()
                self.commands.issue((cycle.id, sheet.id, item.id), value)

    async def refresh(self) -> bool:
        """
        Replace local state with a server snapshot.

        Skipped while the sync gate is armed, a write is in flight or an
        edit is still waiting to be sent; the same checks run again when the
        snapshot arrives.
        """
        if self._refresh_blocked():
            logger.debug("Refresh skipped: local changes in progress")
            return False
        try:
            cycles = await self.api.list_cycles()
        except InventoryAPIError as e:
            logger.warning(f"⚠️ Refresh failed: {str(e)}")
            return False
        if self._refresh_blocked():
            logger.debug("Snapshot dropped: local changes arrived during fetch")
            return False
        self._apply_snapshot(cycles)
        return True

    def _refresh_blocked(self) -> bool:
        return self.gate.is_locked() or self.is_busy or self.commands.has_pending()

    def start_polling(self, interval: Optional[float] = None) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        interval = self.poll_interval if interval is None else interval
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(interval))

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self, interval: float) -> None:
        while True:
            await self.clock.sleep(interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.exception(f"❌ Poll tick failed: {str(e)}")

    # === Writes ===

    async def _commit(self, mutate: Mutation, failure_message: str, create_if_missing: bool = False) -> bool:
        """
        Apply `mutate` to a copy of the working cycle and persist it.

        Local state changes only after the server accepted the write; the
        mutation is then replayed on the live cycle so edits typed during
        the request are kept.
        """
        async with self._write_lock:
            live = self.active_cycle
            if live is None and not create_if_missing:
                raise InventoryValidationError("No active inventory cycle")
            updated = live.model_copy(deep=True) if live is not None else self._new_cycle()
            mutate(updated)

            self.gate.lock()
            self._busy += 1
            try:
                await self.api.upsert_cycle(updated)
            except InventoryAPIError as e:
                logger.error(f"❌ {failure_message}: {str(e)}")
                self.notifier.notify(failure_message, NotificationLevel.ERROR)
                return False
            finally:
                self._busy -= 1

            if live is None:
                self.active_cycle = updated
                self.cycles.insert(0, updated)
            else:
                mutate(live)
            return True

    async def _write_latest(self, failure_message: str) -> bool:
        """Send the current working cycle as is"""
        async with self._write_lock:
            cycle = self.active_cycle
            if cycle is None:
                return False
            snapshot = cycle.model_copy(deep=True)
            self.gate.lock()
            self._busy += 1
            try:
                await self.api.upsert_cycle(snapshot)
            except InventoryAPIError as e:
                logger.warning(f"⚠️ {failure_message}: {str(e)}")
                self.notifier.notify(failure_message, NotificationLevel.ERROR)
                return False
            finally:
                self._busy -= 1
            return True

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def flush(self) -> None:
        """Send pending quantity edits now instead of after the debounce"""
        await self.commands.flush()

    async def drain(self) -> None:
        """Wait for every background write started so far"""
        await self.commands.drain()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self) -> None:
        await self.stop_polling()
        await self.flush()
        await self.drain()

    # === Sheets ===

    def _new_cycle(self) -> InventoryCycle:
        return InventoryCycle(
            id=str(uuid4()),
            date=current_millis(),
            sheets=[],
            is_finalized=False,
            created_by=self.user.name or "Admin",
        )

    @staticmethod
    def _new_item(entry: GlobalInventoryItem, initial: Optional[float]) -> InventoryItem:
        return InventoryItem(id=str(uuid4()), name=entry.name, unit=entry.unit, code=entry.code, actual=initial)

    @classmethod
    def _build_items(
        cls,
        entries: Iterable[GlobalInventoryItem],
        initial: Optional[float],
        existing: Optional[Set[tuple]] = None,
    ) -> List[InventoryItem]:
        seen = set(existing or ())
        items = []
        for entry in entries:
            if entry.product_key in seen:
                continue
            seen.add(entry.product_key)
            items.append(cls._new_item(entry, initial))
        return items

    async def create_sheet(
        self,
        title: str,
        catalog_items: Iterable[GlobalInventoryItem] = (),
        initial_value: Union[str, float, None] = None,
    ) -> Optional[InventorySheet]:
        """Add a sheet to the working cycle, creating the cycle when there is none"""
        self._require_admin("create sheets")
        title = (title or "").strip()
        if not title:
            raise InventoryValidationError("Sheet title must not be empty")

        sheet = InventorySheet(
            id=str(uuid4()),
            title=title,
            items=self._build_items(catalog_items, parse_quantity(initial_value)),
        )

        def mutate(cycle: InventoryCycle):
            cycle.sheets.append(sheet.model_copy(deep=True))

        if not await self._commit(mutate, "Ошибка создания бланка", create_if_missing=True):
            return None
        logger.info(f"✅ Sheet '{title}' created with {len(sheet.items)} items")
        self.notifier.notify("Бланк создан", NotificationLevel.SUCCESS)
        return self.active_cycle.find_sheet(sheet.id)

    async def add_items_to_sheet(
        self,
        sheet_id: str,
        catalog_items: Iterable[GlobalInventoryItem],
        initial_value: Union[str, float, None] = None,
    ) -> List[InventoryItem]:
        """Append catalog products; products already on the sheet (same name and unit) are skipped"""
        _, sheet = self._require_sheet(sheet_id)
        self._require_edit_rights(sheet)

        existing = {item.product_key for item in sheet.items}
        new_items = self._build_items(catalog_items, parse_quantity(initial_value), existing)
        if not new_items:
            return []

        def mutate(cycle: InventoryCycle):
            target = cycle.find_sheet(sheet_id)
            if target is not None:
                target.items.extend(item.model_copy(deep=True) for item in new_items)

        if not await self._commit(mutate, "Ошибка добавления позиций"):
            return []
        self.notifier.notify(f"Добавлено позиций: {len(new_items)}", NotificationLevel.SUCCESS)
        return new_items

    async def rename_sheet(self, sheet_id: str, title: str) -> bool:
        self._require_admin("rename sheets")
        self._require_sheet(sheet_id)
        title = (title or "").strip()
        if not title:
            raise InventoryValidationError("Sheet title must not be empty")

        def mutate(cycle: InventoryCycle):
            target = cycle.find_sheet(sheet_id)
            if target is not None:
                target.title = title

        return await self._commit(mutate, "Ошибка переименования")

    async def delete_sheet(self, sheet_id: str) -> None:
        """Remove the sheet locally right away; the write runs in the background"""
        self._require_admin("delete sheets")
        cycle, sheet = self._require_sheet(sheet_id)

        self.gate.lock()
        cycle.sheets = [s for s in cycle.sheets if s.id != sheet_id]
        self.commands.cancel_where(lambda key: key[1] == sheet_id)
        keys = [draft_key(cycle.id, sheet_id, item.id) for item in sheet.items]
        self._spawn(self._delete_write(keys, "Ошибка удаления бланка"))

    async def delete_item(self, sheet_id: str, item_id: str) -> None:
        """Remove the item locally right away; the write runs in the background"""
        cycle, sheet = self._require_sheet(sheet_id)
        self._require_edit_rights(sheet)
        if sheet.find_item(item_id) is None:
            raise InventoryValidationError(f"Item {item_id} not found")

        self.gate.lock()
        sheet.items = [item for item in sheet.items if item.id != item_id]
        self.commands.cancel((cycle.id, sheet_id, item_id))
        self._spawn(self._delete_write([draft_key(cycle.id, sheet_id, item_id)], "Ошибка удаления позиции"))

    async def _delete_write(self, draft_keys: List[str], failure_message: str) -> None:
        if await self._write_latest(failure_message):
            for key in draft_keys:
                await self.drafts.clear(key)

    # === Counting ===

    async def start_counting(self, sheet_id: str) -> LockResult:
        """Ask the server for the sheet lock; the answer decides whether fields become editable"""
        cycle, sheet = self._require_sheet(sheet_id)
        if sheet.status == SheetStatus.SUBMITTED:
            raise InventoryValidationError("Sheet is already submitted")

        try:
            result = await self.api.lock(cycle.id, sheet_id, self.user)
        except InventoryAPIError as e:
            logger.error(f"❌ Lock request failed: {str(e)}")
            self.notifier.notify("Ошибка", NotificationLevel.ERROR)
            return LockResult(granted=False)

        live = self.active_cycle.find_sheet(sheet_id) if self.active_cycle else None
        if result.granted:
            if live is not None:
                live.locked_by = self.user
            self.notifier.notify("Бланк взят в работу", NotificationLevel.SUCCESS)
            await self.refresh()
        else:
            if live is not None:
                live.locked_by = result.holder
            name = result.holder.display_name if result.holder else "?"
            self.notifier.notify(f"Занято: {name}", NotificationLevel.WARNING)
        return result

    async def set_item_quantity(self, sheet_id: str, item_id: str, raw_text: Union[str, float, None]) -> Optional[float]:
        """
        Record a keystroke-level quantity edit.

        Updates local state and the draft immediately, arms the sync gate and
        (re)schedules the debounced write for this item. Invalid or empty
        input clears the count.
        """
        cycle, sheet = self._require_sheet(sheet_id)
        self._require_edit_rights(sheet)
        item = sheet.find_item(item_id)
        if item is None:
            raise InventoryValidationError(f"Item {item_id} not found")

        value = parse_quantity(raw_text)
        item.actual = value
        text = normalize_quantity_text(raw_text) if isinstance(raw_text, str) else str(raw_text)
        await self.drafts.set(draft_key(cycle.id, sheet_id, item_id), text if value is not None else "")
        self.gate.lock()
        self.commands.issue((cycle.id, sheet_id, item_id), value)
        return value

    async def _sync_item(self, key: ItemKey, value: Optional[float]) -> None:
        cycle_id, sheet_id, item_id = key
        if self.active_cycle is None or self.active_cycle.id != cycle_id:
            logger.info(f"Dropping write for item {item_id}: cycle {cycle_id} is no longer active")
            return
        if await self._write_latest("Ошибка сохранения"):
            logger.debug(f"Item {item_id} saved: {value}")
            if not self.commands.is_pending(key):
                await self.drafts.clear(draft_key(cycle_id, sheet_id, item_id))

    async def submit_sheet(self, sheet_id: str) -> bool:
        """Mark the sheet submitted, stamp who/when and release its lock"""
        cycle, sheet = self._require_sheet(sheet_id)
        self._require_edit_rights(sheet)

        # pending edits travel with this write
        dropped = self.commands.cancel_where(lambda key: key[1] == sheet_id)
        updated_by = self.user.name or "Admin"

        def mutate(target_cycle: InventoryCycle):
            target = target_cycle.find_sheet(sheet_id)
            if target is not None:
                target.status = SheetStatus.SUBMITTED
                target.locked_by = None
                target.updated_by = updated_by
                target.updated_at = current_millis()

        if not await self._commit(mutate, "Ошибка отправки бланка"):
            for key, value in dropped:
                self.commands.issue(key, value)
            return False

        for item in sheet.items:
            await self.drafts.clear(draft_key(cycle.id, sheet_id, item.id))
        await self._release_quietly(cycle.id, sheet_id)
        self.notifier.notify("Бланк сдан", NotificationLevel.SUCCESS)
        return True

    async def reopen_sheet(self, sheet_id: str) -> bool:
        """Send a submitted sheet back to counting"""
        self._require_admin("reopen sheets")
        cycle, _ = self._require_sheet(sheet_id)

        def mutate(target_cycle: InventoryCycle):
            target = target_cycle.find_sheet(sheet_id)
            if target is not None:
                target.status = SheetStatus.ACTIVE
                target.locked_by = None

        if not await self._commit(mutate, "Ошибка"):
            return False
        await self._release_quietly(cycle.id, sheet_id)
        return True

    async def force_unlock(self, sheet_id: str) -> bool:
        self._require_admin("unlock sheets")
        cycle, _ = self._require_sheet(sheet_id)
        try:
            await self.api.unlock(cycle.id, sheet_id)
        except InventoryAPIError as e:
            logger.error(f"❌ Unlock failed: {str(e)}")
            self.notifier.notify("Ошибка", NotificationLevel.ERROR)
            return False

        live = self.active_cycle.find_sheet(sheet_id) if self.active_cycle else None
        if live is not None:
            live.locked_by = None
        self.notifier.notify("Блокировка снята", NotificationLevel.INFO)
        await self.refresh()
        return True

    async def _release_quietly(self, cycle_id: str, sheet_id: str) -> None:
        try:
            await self.api.unlock(cycle_id, sheet_id)
        except InventoryAPIError as e:
            logger.warning(f"⚠️ Unlock after write failed for sheet {sheet_id}: {str(e)}")

    # === Finalize ===

    async def finalize_cycle(self) -> InventoryCycle:
        """
        Archive the working cycle and reset it for the next count.

        The archive is written first; the reset is only sent once the archive
        has been accepted. Raises FinalizeError when either write fails.
        """
        self._require_admin("finalize inventory")
        cycle = self.active_cycle
        if cycle is None:
            raise InventoryValidationError("No active inventory cycle")
        if not cycle.all_submitted:
            raise InventoryValidationError("Every sheet must be submitted before finalizing")

        # pending edits travel with the archive; they are re-queued if it fails
        dropped = self.commands.cancel_where(lambda key: key[0] == cycle.id)
        async with self._write_lock:
            source = self.active_cycle.model_copy(deep=True)
            archive = build_archive_cycle(source)
            reset = reset_working_cycle(source)

            self.gate.lock()
            self._busy += 1
            try:
                try:
                    await self.api.upsert_cycle(archive)
                except InventoryAPIError as e:
                    logger.error(f"❌ Archive write failed, working cycle left untouched: {str(e)}")
                    self.notifier.notify("Ошибка архивации", NotificationLevel.ERROR)
                    raise FinalizeError("Archive could not be saved; the working cycle was not reset") from e

                try:
                    await self.api.upsert_cycle(reset)
                except InventoryAPIError as e:
                    logger.error(f"❌ Archive {archive.id} saved but reset failed: {str(e)}")
                    self.notifier.notify("Архив сохранён, но сброс не выполнен", NotificationLevel.ERROR)
                    raise FinalizeError(f"Archive {archive.id} saved but the working cycle could not be reset") from e
            except FinalizeError:
                for key, value in dropped:
                    self.commands.issue(key, value)
                raise
            finally:
                self._busy -= 1

            self.active_cycle = reset
            self.cycles = [archive] + [reset if c.id == reset.id else c for c in self.cycles]

        for sheet in source.sheets:
            for item in sheet.items:
                await self.drafts.clear(draft_key(source.id, sheet.id, item.id))
        logger.info(f"✅ Cycle {source.id} archived as {archive.id}")
        self.notifier.notify("Инвентаризация проведена", NotificationLevel.SUCCESS)
        return archive

    # === Summary and files ===

    def summary(self) -> List[ProductTotal]:
        return list(aggregate(self.active_cycle, self.catalog).values())

    def export_summary(self) -> bytes:
        if self.active_cycle is None:
            raise InventoryValidationError("No active inventory cycle")
        return self.exporter.build_workbook(self.active_cycle, self.catalog, include_stations=False).getvalue()

    async def import_catalog(self, content: bytes) -> int:
        """Load catalog rows from a workbook and upsert them by code"""
        self._require_admin("import the catalog")
        items = parse_catalog_workbook(content)
        if not items:
            raise InventoryValidationError("No catalog rows found in the workbook")
        try:
            count = await self.api.upsert_global_items(items)
            self.catalog = await self.api.list_global_items()
        except InventoryAPIError as e:
            logger.error(f"❌ Catalog import failed: {str(e)}")
            self.notifier.notify("Ошибка импорта", NotificationLevel.ERROR)
            return 0
        self.notifier.notify("База обновлена!", NotificationLevel.SUCCESS)
        return count

    async def import_sheets(self, content: bytes) -> List[InventorySheet]:
        """Create one sheet per station tab of a workbook; the summary tab is skipped"""
        self._require_admin("import sheets")
        parsed = [s for s in parse_station_workbook(content) if not s.is_summary and s.items]
        if not parsed:
            raise InventoryValidationError("No station sheets found in the workbook")

        sheets = []
        for imported in parsed:
            items = []
            seen = set()
            for row in imported.items:
                if (row.name, row.unit) in seen:
                    continue
                seen.add((row.name, row.unit))
                items.append(InventoryItem(id=str(uuid4()), name=row.name, unit=row.unit, code=row.code or None))
            sheets.append(InventorySheet(id=str(uuid4()), title=imported.title, items=items))

        def mutate(cycle: InventoryCycle):
            cycle.sheets.extend(sheet.model_copy(deep=True) for sheet in sheets)

        if not await self._commit(mutate, "Ошибка импорта", create_if_missing=True):
            return []
        self.notifier.notify(f"Импортировано бланков: {len(sheets)}", NotificationLevel.SUCCESS)
        return sheets
