import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
from chefdeck.core.config import settings
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle
from chefdeck.sync.api_client import InventoryAPIClient
from chefdeck.sync.exceptions import InventoryNotFoundError
from chefdeck.utils.date_time_serializer import millis_to_datetime
from chefdeck.utils.inventory_exporter import InventoryWorkbookExporter

logger = logging.getLogger(__name__)

MONTH_NAMES = {
    1: "Январь", 2: "Февраль", 3: "Март", 4: "Апрель", 5: "Май", 6: "Июнь",
    7: "Июль", 8: "Август", 9: "Сентябрь", 10: "Октябрь", 11: "Ноябрь", 12: "Декабрь",
}


@dataclass
class ArchiveMonth:
    year: int
    month: int
    cycles: List[InventoryCycle] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"{MONTH_NAMES[self.month]} {self.year}"


def group_by_month(cycles: Iterable[InventoryCycle], tz_name: Optional[str] = None) -> List[ArchiveMonth]:
    """Newest month first, newest cycle first inside a month"""
    groups: Dict[tuple, ArchiveMonth] = {}
    for cycle in sorted(cycles, key=lambda c: c.date, reverse=True):
        moment = millis_to_datetime(cycle.date, tz_name)
        key = (moment.year, moment.month)
        if key not in groups:
            groups[key] = ArchiveMonth(year=moment.year, month=moment.month)
        groups[key].cycles.append(cycle)
    return [groups[key] for key in sorted(groups, reverse=True)]


class ArchiveReader:
    """Read-only access to finalized cycles"""

    def __init__(self, api: InventoryAPIClient, tz_name: Optional[str] = None):
        self.api = api
        self.tz_name = tz_name or settings.TIMEZONE
        self.exporter = InventoryWorkbookExporter()
        self._archive: Dict[str, InventoryCycle] = {}

    async def list_finalized(self) -> List[ArchiveMonth]:
        cycles = [c for c in await self.api.list_cycles() if c.is_finalized]
        self._archive = {c.id: c for c in cycles}
        logger.info(f"📦 Archive holds {len(cycles)} finalized cycles")
        return group_by_month(cycles, self.tz_name)

    async def open_cycle(self, cycle_id: str) -> InventoryCycle:
        if cycle_id not in self._archive:
            await self.list_finalized()
        cycle = self._archive.get(cycle_id)
        if cycle is None:
            raise InventoryNotFoundError(f"Archived cycle {cycle_id} not found")
        return cycle.model_copy(deep=True)

    def export_to_spreadsheet(
        self,
        cycle: InventoryCycle,
        catalog: Optional[List[GlobalInventoryItem]] = None,
    ) -> bytes:
        """Summary plus per-station sheets; archived cycles are exported without catalog padding"""
        return self.exporter.build_workbook(cycle, catalog or []).getvalue()

    def export_filename(self, cycle: InventoryCycle) -> str:
        return self.exporter.export_filename(cycle, prefix="Inventory")

    async def clear(self) -> int:
        deleted = await self.api.clear_archive()
        self._archive = {}
        logger.info(f"🗑️ Archive cleared: {deleted} cycles")
        return deleted
