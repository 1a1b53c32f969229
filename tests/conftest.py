import pytest
from chefdeck.sync.draft_store import MemoryDraftStore
from chefdeck.sync.engine import InventoryEngine
from tests.fakes import ADMIN, CATALOG, IVAN, FakeInventoryAPI, ManualClock, RecordingNotifier, make_cycle


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def drafts() -> MemoryDraftStore:
    return MemoryDraftStore()


@pytest.fixture
def fake_api() -> FakeInventoryAPI:
    return FakeInventoryAPI(cycles=[make_cycle(locked_by=IVAN)], catalog=CATALOG)


@pytest.fixture
def make_engine(fake_api, clock, notifier, drafts):
    """Factory for engines sharing one fake server, clock and draft store"""
    def _make(user=IVAN, is_admin=False, api=None):
        engine = InventoryEngine(
            api or fake_api,
            user,
            is_admin,
            draft_store=drafts,
            notifier=notifier,
            clock=clock,
            gate_seconds=3.0,
            debounce_seconds=0.8,
            poll_interval=7.0,
        )
        return engine

    return _make


@pytest.fixture
async def engine(make_engine):
    engine = make_engine()
    assert await engine.load()
    return engine


@pytest.fixture
async def admin_engine(make_engine):
    engine = make_engine(user=ADMIN, is_admin=True)
    assert await engine.load()
    return engine
