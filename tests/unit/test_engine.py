import asyncio
from io import BytesIO
import pytest
from openpyxl import load_workbook
from chefdeck.models.shared.enums import NotificationLevel, SheetStatus
from chefdeck.sync.draft_store import draft_key
from chefdeck.sync.exceptions import FinalizeError, InventoryValidationError, SheetLockedError
from tests.fakes import (
    ADMIN, ANNA, CATALOG, IVAN, FakeInventoryAPI, make_cycle, settle, workbook_bytes
)

MILK = draft_key("c1", "kitchen", "milk-k")


def milk(engine_or_cycle):
    cycle = getattr(engine_or_cycle, "active_cycle", engine_or_cycle)
    return cycle.find_sheet("kitchen").find_item("milk-k")


def submitted_api():
    cycle = make_cycle()
    for sheet in cycle.sheets:
        sheet.status = SheetStatus.SUBMITTED
    cycle.find_sheet("kitchen").find_item("milk-k").actual = 2
    cycle.find_sheet("kitchen").find_item("cheese").actual = 0
    cycle.find_sheet("bar").find_item("milk-b").actual = 1.5
    return FakeInventoryAPI(cycles=[cycle], catalog=CATALOG)


@pytest.mark.asyncio
class TestQuantityEditing:
    """Debounced writes, sync gate and drafts"""

    async def test_burst_sends_one_write_with_last_value(self, engine, fake_api, clock):
        await engine.set_item_quantity("kitchen", "milk-k", "2")
        await clock.advance(0.3)
        await engine.set_item_quantity("kitchen", "milk-k", "2.5")
        await clock.advance(0.3)
        await engine.set_item_quantity("kitchen", "milk-k", "10")
        await clock.advance(0.79)
        assert fake_api.upserts == []

        await clock.advance(0.02)
        assert len(fake_api.upserts) == 1
        assert milk(fake_api.upserts[0]).actual == 10

    async def test_local_value_is_immediate(self, engine):
        assert await engine.set_item_quantity("kitchen", "milk-k", "2,5") == 2.5
        assert milk(engine).actual == 2.5

    async def test_invalid_input_clears_count(self, engine, fake_api, clock, drafts):
        await engine.set_item_quantity("kitchen", "milk-k", "4")
        await clock.advance(0.8)
        await engine.set_item_quantity("kitchen", "milk-k", "abc")
        assert milk(engine).actual is None
        assert await drafts.get(MILK) == ""

        await clock.advance(0.8)
        assert milk(fake_api.stored("c1")).actual is None

    async def test_stale_snapshot_does_not_overwrite_typing(self, engine, fake_api, clock):
        await engine.set_item_quantity("kitchen", "milk-k", "2.5")
        await clock.advance(0.9)
        assert milk(fake_api.stored("c1")).actual == 2.5

        await engine.set_item_quantity("kitchen", "milk-k", "10")
        assert not await engine.refresh()
        assert milk(engine).actual == 10

        await clock.advance(0.9)
        assert not await engine.refresh()

        await clock.advance(3.0)
        assert await engine.refresh()
        assert milk(engine).actual == 10

    async def test_snapshot_arriving_after_new_input_is_dropped(self, engine, fake_api):
        fake_api.list_gate = asyncio.Event()
        fetch = asyncio.ensure_future(engine.refresh())
        await settle()

        await engine.set_item_quantity("kitchen", "milk-k", "4")
        fake_api.list_gate.set()

        assert await fetch is False
        assert milk(engine).actual == 4

    async def test_snapshot_replaces_local_state_when_idle(self, engine, fake_api):
        remote = fake_api.stored("c1")
        remote.find_sheet("bar").title = "Бар 2"
        remote.find_sheet("bar").find_item("milk-b").actual = 7
        fake_api.documents["c1"] = remote.to_document()

        assert await engine.refresh()
        assert engine.active_cycle.find_sheet("bar").title == "Бар 2"
        assert engine.active_cycle.find_sheet("bar").find_item("milk-b").actual == 7

    async def test_draft_cleared_after_confirmed_write(self, engine, clock, drafts):
        await engine.set_item_quantity("kitchen", "milk-k", "2,5")
        assert await drafts.get(MILK) == "2.5"

        await clock.advance(0.8)
        assert await drafts.get(MILK) is None

    async def test_failed_write_keeps_draft(self, engine, fake_api, clock, drafts, notifier):
        fake_api.fail_when = lambda cycle: True
        await engine.set_item_quantity("kitchen", "milk-k", "3")
        await clock.advance(0.8)

        assert await drafts.get(MILK) == "3"
        assert milk(engine).actual == 3
        assert NotificationLevel.ERROR in notifier.levels()

    async def test_reload_restores_unsent_draft(self, make_engine, fake_api, clock, drafts):
        first = make_engine()
        await first.load()
        fake_api.fail_when = lambda cycle: True
        await first.set_item_quantity("kitchen", "milk-k", "3")
        await clock.advance(0.8)
        fake_api.fail_when = None

        second = make_engine()
        assert await second.load()
        assert milk(second).actual == 3

        await clock.advance(0.8)
        assert milk(fake_api.stored("c1")).actual == 3
        assert await drafts.get(MILK) is None

    async def test_close_flushes_pending_edits(self, engine, fake_api):
        await engine.set_item_quantity("kitchen", "milk-k", "5")
        await engine.close()
        assert milk(fake_api.stored("c1")).actual == 5


@pytest.mark.asyncio
class TestSheetLocks:
    async def test_other_user_cannot_edit(self, make_engine, fake_api):
        anna = make_engine(user=ANNA)
        await anna.load()

        with pytest.raises(SheetLockedError) as exc_info:
            await anna.set_item_quantity("kitchen", "milk-k", "1")
        assert exc_info.value.holder == IVAN

        with pytest.raises(SheetLockedError):
            await anna.delete_item("kitchen", "cheese")
        assert not anna.can_edit("kitchen")
        assert fake_api.upserts == []

    async def test_admin_can_edit_locked_sheet(self, admin_engine):
        assert admin_engine.can_edit("kitchen")
        assert await admin_engine.set_item_quantity("kitchen", "cheese", "1") == 1

    async def test_lock_refused_reports_holder(self, make_engine, notifier):
        anna = make_engine(user=ANNA)
        await anna.load()

        result = await anna.start_counting("kitchen")
        assert not result.granted
        assert result.holder == IVAN
        assert (NotificationLevel.WARNING, "Занято: Ivan") in notifier.messages

    async def test_lock_granted_enables_editing(self, make_engine, fake_api):
        anna = make_engine(user=ANNA)
        await anna.load()

        result = await anna.start_counting("bar")
        assert result.granted
        assert anna.can_edit("bar")
        assert fake_api.stored("c1").find_sheet("bar").locked_by == ANNA

    async def test_submitted_sheet_cannot_be_taken(self, make_engine, fake_api):
        fake_api.documents["c1"]["sheets"][1]["status"] = "submitted"
        anna = make_engine(user=ANNA)
        await anna.load()
        with pytest.raises(InventoryValidationError):
            await anna.start_counting("bar")

    async def test_force_unlock_is_admin_only(self, engine, admin_engine, fake_api):
        with pytest.raises(InventoryValidationError):
            await engine.force_unlock("kitchen")

        assert await admin_engine.force_unlock("kitchen")
        assert fake_api.stored("c1").find_sheet("kitchen").locked_by is None


@pytest.mark.asyncio
class TestSubmit:
    async def test_submit_folds_pending_edits_and_unlocks(self, engine, fake_api, clock):
        await engine.set_item_quantity("kitchen", "milk-k", "2")
        await engine.set_item_quantity("kitchen", "cheese", "1")

        assert await engine.submit_sheet("kitchen")
        assert len(fake_api.upserts) == 1

        stored = fake_api.stored("c1").find_sheet("kitchen")
        assert stored.status == SheetStatus.SUBMITTED
        assert stored.locked_by is None
        assert stored.updated_by == "Ivan"
        assert stored.updated_at is not None
        assert [i.actual for i in stored.items] == [2, 1]
        assert fake_api.unlocks == [("c1", "kitchen")]

        await clock.advance(1.0)
        assert len(fake_api.upserts) == 1
        assert not engine.can_edit("kitchen")

    async def test_failed_submit_requeues_edits(self, engine, fake_api, clock):
        await engine.set_item_quantity("kitchen", "milk-k", "2")
        fake_api.fail_when = lambda cycle: True
        assert not await engine.submit_sheet("kitchen")
        assert engine.active_cycle.find_sheet("kitchen").status == SheetStatus.ACTIVE

        fake_api.fail_when = None
        await clock.advance(0.8)
        assert milk(fake_api.stored("c1")).actual == 2

    async def test_reopen(self, admin_engine, fake_api):
        await admin_engine.submit_sheet("bar")
        assert await admin_engine.reopen_sheet("bar")
        assert fake_api.stored("c1").find_sheet("bar").status == SheetStatus.ACTIVE


@pytest.mark.asyncio
class TestStructureEdits:
    async def test_delete_item_is_immediate(self, engine, fake_api):
        await engine.delete_item("kitchen", "cheese")
        assert engine.active_cycle.find_sheet("kitchen").find_item("cheese") is None

        await engine.drain()
        assert [i.id for i in fake_api.stored("c1").find_sheet("kitchen").items] == ["milk-k"]

    async def test_delete_item_cancels_pending_write(self, engine, fake_api, clock, drafts):
        await engine.set_item_quantity("kitchen", "cheese", "3")
        await engine.delete_item("kitchen", "cheese")
        await engine.drain()
        await clock.advance(1.0)

        assert len(fake_api.upserts) == 1
        assert await drafts.get(draft_key("c1", "kitchen", "cheese")) is None

    async def test_create_sheet(self, admin_engine, fake_api):
        sheet = await admin_engine.create_sheet("  Склад ", [CATALOG[0], CATALOG[0], CATALOG[2]], initial_value="0")

        assert sheet.title == "Склад"
        assert [(i.name, i.actual) for i in sheet.items] == [("Молоко", 0), ("Сахар", 0)]
        assert len(fake_api.stored("c1").sheets) == 3

    async def test_create_sheet_validation(self, engine, admin_engine):
        with pytest.raises(InventoryValidationError):
            await admin_engine.create_sheet("   ")
        with pytest.raises(InventoryValidationError):
            await engine.create_sheet("Склад")

    async def test_first_sheet_creates_cycle(self, make_engine):
        api = FakeInventoryAPI(catalog=CATALOG)
        admin = make_engine(user=ADMIN, is_admin=True, api=api)
        await admin.load()
        assert admin.active_cycle is None

        sheet = await admin.create_sheet("Кухня", CATALOG)
        cycle = admin.active_cycle
        assert cycle.created_by == "Admin"
        assert not cycle.is_finalized
        assert api.stored(cycle.id).find_sheet(sheet.id).title == "Кухня"

    async def test_failed_create_leaves_state(self, admin_engine, fake_api, notifier):
        fake_api.fail_when = lambda cycle: True
        assert await admin_engine.create_sheet("Склад") is None
        assert len(admin_engine.active_cycle.sheets) == 2
        assert NotificationLevel.ERROR in notifier.levels()

    async def test_add_items_skips_existing_products(self, engine, fake_api):
        added = await engine.add_items_to_sheet("kitchen", [CATALOG[0], CATALOG[2]])
        assert [i.name for i in added] == ["Сахар"]
        assert [i.name for i in fake_api.stored("c1").find_sheet("kitchen").items] == ["Молоко", "Сыр", "Сахар"]

    async def test_rename_and_delete_sheet(self, admin_engine, fake_api):
        assert await admin_engine.rename_sheet("bar", "Бар основной")
        assert fake_api.stored("c1").find_sheet("bar").title == "Бар основной"

        await admin_engine.delete_sheet("bar")
        assert admin_engine.active_cycle.find_sheet("bar") is None
        await admin_engine.drain()
        assert fake_api.stored("c1").find_sheet("bar") is None

    async def test_sheet_admin_actions_need_admin(self, engine):
        with pytest.raises(InventoryValidationError):
            await engine.rename_sheet("bar", "x")
        with pytest.raises(InventoryValidationError):
            await engine.delete_sheet("bar")


@pytest.mark.asyncio
class TestFinalize:
    async def test_archive_then_reset(self, make_engine):
        api = submitted_api()
        admin = make_engine(user=ADMIN, is_admin=True, api=api)
        await admin.load()

        archive = await admin.finalize_cycle()

        assert [u.is_finalized for u in api.upserts] == [True, False]
        assert archive.id != "c1"
        assert [[i.id for i in s.items] for s in archive.sheets] == [["milk-k"], ["milk-b"]]

        reset = api.stored("c1")
        assert all(i.actual is None for s in reset.sheets for i in s.items)
        assert all(s.status == SheetStatus.ACTIVE for s in reset.sheets)
        assert admin.active_cycle.id == "c1"
        assert admin.cycles[0].id == archive.id

    async def test_requires_every_sheet_submitted(self, admin_engine, fake_api):
        with pytest.raises(InventoryValidationError):
            await admin_engine.finalize_cycle()
        assert fake_api.upserts == []

    async def test_archive_failure_leaves_working_cycle(self, make_engine):
        api = submitted_api()
        api.fail_when = lambda cycle: cycle.is_finalized
        admin = make_engine(user=ADMIN, is_admin=True, api=api)
        await admin.load()

        with pytest.raises(FinalizeError):
            await admin.finalize_cycle()

        assert api.upserts == []
        assert milk(api.stored("c1")).actual == 2
        assert milk(admin).actual == 2

    async def test_reset_failure_is_reported(self, make_engine):
        api = submitted_api()
        api.fail_when = lambda cycle: not cycle.is_finalized
        admin = make_engine(user=ADMIN, is_admin=True, api=api)
        await admin.load()

        with pytest.raises(FinalizeError) as exc_info:
            await admin.finalize_cycle()

        assert "saved" in str(exc_info.value)
        assert len(api.upserts) == 1
        assert milk(admin).actual == 2

    async def test_pending_edit_survives_failed_archive(self, make_engine, clock):
        api = submitted_api()
        admin = make_engine(user=ADMIN, is_admin=True, api=api)
        await admin.load()
        await admin.set_item_quantity("kitchen", "milk-k", "5")
        api.fail_when = lambda cycle: cycle.is_finalized

        with pytest.raises(FinalizeError):
            await admin.finalize_cycle()

        await clock.advance(0.8)
        assert milk(api.stored("c1")).actual == 5

        await clock.advance(5.0)
        assert await admin.refresh()
        assert milk(admin).actual == 5

    async def test_pending_edit_survives_failed_reset(self, make_engine, clock):
        api = submitted_api()
        admin = make_engine(user=ADMIN, is_admin=True, api=api)
        await admin.load()
        await admin.set_item_quantity("kitchen", "milk-k", "5")
        api.fail_when = lambda cycle: not cycle.is_finalized

        with pytest.raises(FinalizeError):
            await admin.finalize_cycle()
        archive = api.upserts[0]
        assert milk(archive).actual == 5

        api.fail_when = None
        await clock.advance(0.8)
        assert milk(api.stored("c1")).actual == 5


@pytest.mark.asyncio
class TestPolling:
    async def test_polls_on_interval(self, engine, fake_api, clock):
        calls = fake_api.list_calls
        engine.start_polling()
        await clock.advance(7.0)
        assert fake_api.list_calls == calls + 1
        await clock.advance(7.0)
        assert fake_api.list_calls == calls + 2

        await engine.stop_polling()
        await clock.advance(14.0)
        assert fake_api.list_calls == calls + 2

    async def test_tick_skipped_while_editing(self, engine, fake_api, clock):
        calls = fake_api.list_calls
        engine.start_polling()
        await clock.advance(6.0)
        await engine.set_item_quantity("kitchen", "milk-k", "1")
        await clock.advance(1.5)
        assert fake_api.list_calls == calls
        await engine.stop_polling()


@pytest.mark.asyncio
class TestSummaryAndFiles:
    async def test_summary_includes_catalog(self, engine):
        await engine.set_item_quantity("kitchen", "milk-k", "2")
        totals = {(t.name, t.unit): t.total for t in engine.summary()}
        assert totals[("Молоко", "л")] == 2
        assert totals[("Сахар", "кг")] == 0

    async def test_export_summary(self, engine):
        workbook = load_workbook(BytesIO(engine.export_summary()))
        assert workbook.sheetnames == ["Сводная"]

    async def test_import_catalog(self, admin_engine):
        content = workbook_bytes([("Прайс", [
            ["Код", "Наименование", "Ед. изм."],
            ["1004", "Мука", "кг"],
        ])])
        assert await admin_engine.import_catalog(content) == 1
        assert "Мука" in [item.name for item in admin_engine.catalog]

    async def test_import_sheets_skips_summary(self, admin_engine, fake_api):
        content = workbook_bytes([
            ("Сводная", [["Наименование", "Ед"], ["Молоко", "л"]]),
            ("Холодильник", [["Код", "Наименование", "Ед"], ["1001", "Молоко", "л"], ["1001", "Молоко", "л"]]),
        ])
        sheets = await admin_engine.import_sheets(content)

        assert [s.title for s in sheets] == ["Холодильник"]
        assert len(sheets[0].items) == 1
        assert [s.title for s in fake_api.stored("c1").sheets] == ["Кухня", "Бар", "Холодильник"]
