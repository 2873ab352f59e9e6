"""Shared test fixtures."""

import threading
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from vendor_tracker.core.database import get_session
from vendor_tracker.core.security import create_access_token
from vendor_tracker.integrations.image_store import ImageUploadError, UploadedImage
from vendor_tracker.integrations.notifier import NotifierAck, NotifierError
from vendor_tracker.lifecycle.engine import LifecycleEngine, NewEvent
from vendor_tracker.lifecycle.store import EventStore
from vendor_tracker.main import app
from vendor_tracker.models import Event

VENDOR_A = "vendor-a"
VENDOR_B = "vendor-b"


class FakeClock:
    """Controllable clock for OTP expiry and duration tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> datetime:
        self.now = self.now + delta
        return self.now


class FakeImageStore:
    """Image store that records uploads instead of sending them anywhere."""

    def __init__(self):
        self.uploads: list[tuple[bytes, str]] = []
        self.error: ImageUploadError | None = None
        self.failing_payloads: set[bytes] = set()
        self._lock = threading.Lock()

    def upload(self, payload, folder, constraints):
        if self.error:
            raise self.error
        if payload in self.failing_payloads:
            raise ImageUploadError(f"upload of {payload.decode()} timed out")
        with self._lock:
            self.uploads.append((payload, folder))
        # Setup photos upload concurrently, so names come from the payload
        name = payload.decode()
        return UploadedImage(
            url=f"https://images.test/{folder}/{name}.jpg",
            public_id=f"{folder}/{name}",
        )


class RecordingNotifier:
    """Notifier that keeps every code it was asked to send."""

    def __init__(self):
        self.sent: list[dict] = []
        self.error: NotifierError | None = None
        self.is_open = False

    def open(self):
        self.is_open = True

    def verify(self):
        return self.is_open

    def close(self):
        self.is_open = False

    def send(self, phone, email, code, *, purpose="start", customer_name="", event_name=""):
        if self.error:
            raise self.error
        self.sent.append({"phone": phone, "email": email, "code": code, "purpose": purpose})
        return NotifierAck(channel="test", destination=email)

    @property
    def last_code(self) -> str:
        return self.sent[-1]["code"]


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="clock")
def clock_fixture() -> FakeClock:
    return FakeClock(datetime(2026, 3, 14, 9, 0, tzinfo=UTC))


@pytest.fixture(name="image_store")
def image_store_fixture() -> FakeImageStore:
    return FakeImageStore()


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="lifecycle")
def lifecycle_fixture(
    session: Session, image_store: FakeImageStore, notifier: RecordingNotifier, clock: FakeClock
) -> LifecycleEngine:
    """Lifecycle engine wired to the test database and fakes."""
    return LifecycleEngine(EventStore(session), image_store, notifier, clock=clock)


@pytest.fixture(name="client")
def client_fixture(
    session: Session, image_store: FakeImageStore, notifier: RecordingNotifier, clock: FakeClock
):
    """Create a test client with the test database session and fakes."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.state.image_store = image_store
    app.state.notifier = notifier
    app.state.clock = clock
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="auth_headers")
def auth_headers_fixture() -> dict:
    return {"Authorization": f"Bearer {create_access_token(VENDOR_A)}"}


@pytest.fixture(name="other_headers")
def other_headers_fixture() -> dict:
    return {"Authorization": f"Bearer {create_access_token(VENDOR_B)}"}


def new_event(**overrides) -> NewEvent:
    fields = dict(
        event_name="Birthday Party",
        customer_name="Sam Customer",
        customer_email="sam@example.com",
        customer_phone="+15550100",
        event_date=datetime(2026, 3, 14, 18, 0, tzinfo=UTC),
        location="123 Main St",
    )
    fields.update(overrides)
    return NewEvent(**fields)


@pytest.fixture(name="pending_event")
def pending_event_fixture(lifecycle: LifecycleEngine) -> Event:
    """A freshly created event owned by vendor A."""
    return lifecycle.create_event(VENDOR_A, new_event())


class Driver:
    """Moves an event through the lifecycle, one milestone at a time."""

    def __init__(self, lifecycle: LifecycleEngine, notifier: RecordingNotifier, clock: FakeClock):
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.clock = clock

    def check_in(self, event: Event) -> Event:
        return self.lifecycle.check_in(VENDOR_A, event.id, b"arrival", 40.7, -74.0)

    def start(self, event: Event) -> Event:
        self.lifecycle.issue_start_otp(VENDOR_A, event.id)
        return self.lifecycle.verify_start_otp(VENDOR_A, event.id, self.notifier.last_code)

    def finish_setup(self, event: Event) -> Event:
        return self.lifecycle.upload_setup_photos(VENDOR_A, event.id, "post", [b"after"])

    def close(self, event: Event) -> Event:
        self.lifecycle.issue_closing_otp(VENDOR_A, event.id)
        return self.lifecycle.verify_closing_otp(VENDOR_A, event.id, self.notifier.last_code)

    def complete(self, event: Event, step: timedelta = timedelta(minutes=5)) -> Event:
        event = self.check_in(event)
        self.clock.advance(step)
        event = self.start(event)
        self.clock.advance(step)
        event = self.finish_setup(event)
        self.clock.advance(step)
        return self.close(event)


@pytest.fixture(name="driver")
def driver_fixture(lifecycle, notifier, clock) -> Driver:
    return Driver(lifecycle, notifier, clock)


@pytest.fixture(name="create_event")
def create_event_fixture(lifecycle: LifecycleEngine):
    """Factory creating events through the engine."""

    def create(vendor_id: str = VENDOR_A, **overrides) -> Event:
        return lifecycle.create_event(vendor_id, new_event(**overrides))

    return create
