"""Shared fixtures: wired services, a recording push transport and seeded directory records."""

import threading
import time
from decimal import Decimal

import pytest

from orderledger.config import Settings
from orderledger.models import ActorContext, CreateOrderRequest
from orderledger.service import build_services


class RecordingTransport:
    """Push transport that records messages instead of sending them."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.sent: list[dict] = []
        self._lock = threading.Lock()

    def send(self, message: dict, timeout: float) -> dict:
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        with self._lock:
            self.sent.append(message)
            return {"name": f"projects/test/messages/{len(self.sent)}"}

    def tokens(self) -> list[str]:
        with self._lock:
            return [m["token"] for m in self.sent]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        app_name="orderledger-test",
        app_env="test",
        log_level="DEBUG",
        notification_timeout_ms=2000,
        notification_workers=2,
    )


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def services(settings, transport):
    services = build_services(settings, transport=transport)
    yield services
    services.notifier.shutdown(wait=True)


@pytest.fixture
def field_actor(services):
    return services.directory.add_actor("Ravi Kumar", "9000000001", fcm_token="actor-token")


@pytest.fixture
def distributer(services, field_actor):
    return services.directory.add_distributer(
        "Sunil Traders", "9000000002", added_by=field_actor.id, fcm_token="distributer-token"
    )


@pytest.fixture
def distributer_ctx(distributer) -> ActorContext:
    return ActorContext(distributer_id=distributer.id)


@pytest.fixture
def actor_ctx(field_actor) -> ActorContext:
    return ActorContext(actor_id=field_actor.id)


@pytest.fixture
def place_order(services, distributer_ctx):
    def _place(**overrides):
        payload = {"qty": Decimal("10"), "unit": "kg", "total": Decimal("500.00"), "payment_mode": "cod"}
        payload.update(overrides)
        return services.orders.create_order(CreateOrderRequest(**payload), distributer_ctx)

    return _place


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(error=RuntimeError("FCM down"))


@pytest.fixture
def slow_transport() -> RecordingTransport:
    return RecordingTransport(delay=0.5)
