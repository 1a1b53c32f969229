from io import BytesIO
import pytest
from openpyxl import load_workbook
from chefdeck.sync.archive_reader import ArchiveReader, group_by_month
from chefdeck.sync.exceptions import InventoryNotFoundError
from tests.fakes import FakeInventoryAPI, make_cycle

JAN_10 = 1736503200000   # 2025-01-10 10:00 UTC
JAN_20 = 1737367200000   # 2025-01-20 10:00 UTC
MAR_05 = 1741168800000   # 2025-03-05 10:00 UTC


def archived(cycle_id, date):
    cycle = make_cycle(cycle_id, date=date, is_finalized=True)
    cycle.find_sheet("kitchen").find_item("milk-k").actual = 2
    return cycle


class TestGroupByMonth:
    def test_months_and_cycles_newest_first(self):
        months = group_by_month([archived("a1", JAN_10), archived("a3", MAR_05), archived("a2", JAN_20)], "UTC")

        assert [m.label for m in months] == ["Март 2025", "Январь 2025"]
        assert [c.id for c in months[1].cycles] == ["a2", "a1"]

    def test_month_follows_timezone(self):
        new_year_utc = 1735686000000  # 2024-12-31 23:00 UTC, already January in Moscow
        assert group_by_month([archived("a1", new_year_utc)], "Europe/Moscow")[0].label == "Январь 2025"
        assert group_by_month([archived("a1", new_year_utc)], "UTC")[0].label == "Декабрь 2024"


class TestArchiveReader:
    def setup_method(self):
        self.api = FakeInventoryAPI(cycles=[make_cycle("working"), archived("a1", JAN_10), archived("a2", MAR_05)])
        self.reader = ArchiveReader(self.api, tz_name="UTC")

    async def test_lists_only_finalized(self):
        months = await self.reader.list_finalized()
        ids = [c.id for month in months for c in month.cycles]
        assert ids == ["a2", "a1"]

    async def test_open_cycle_returns_copy(self):
        cycle = await self.reader.open_cycle("a1")
        cycle.sheets.clear()
        again = await self.reader.open_cycle("a1")
        assert len(again.sheets) == 2

    async def test_open_working_cycle_is_not_found(self):
        with pytest.raises(InventoryNotFoundError):
            await self.reader.open_cycle("working")

    async def test_export(self):
        cycle = await self.reader.open_cycle("a1")
        workbook = load_workbook(BytesIO(self.reader.export_to_spreadsheet(cycle)))
        assert workbook.sheetnames == ["Сводная", "Кухня", "Бар"]
        assert self.reader.export_filename(cycle) == "Inventory_10.01.2025.xlsx"

    async def test_clear(self):
        assert await self.reader.clear() == 2
        assert await self.reader.list_finalized() == []
        assert "working" in self.api.documents
