import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dental_chart.db.session import get_db
from dental_chart.deps import get_draft_autosaver, get_draft_cache
from dental_chart.main import app
from dental_chart.models import Base
from dental_chart.services.drafts import DraftAutosaver, DraftCache


class ManualClock:
    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.current = start_ms

    def now_ms(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms


class FakeTimer:
    """Stands in for threading.Timer; fires only when a test says so."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def timers():
    return FakeTimerFactory()


@pytest.fixture()
def drafts(clock):
    return DraftCache(clock)


@pytest.fixture()
def autosaver(drafts, timers):
    return DraftAutosaver(drafts, delay_seconds=0.5, timer_factory=timers)


@pytest.fixture()
def client(session_factory, drafts, autosaver):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_draft_cache] = lambda: drafts
    app.dependency_overrides[get_draft_autosaver] = lambda: autosaver
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
