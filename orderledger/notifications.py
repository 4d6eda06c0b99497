"""
Best-effort push notifications.

``NotificationDispatcher.send`` never raises: a missing recipient, a recipient
without a registered token, a transport error and a timeout all come back as a
``DeliveryResult`` with ``delivered=False``. ``notify`` runs ``send`` on a
worker pool and returns immediately, so order and ledger operations never wait
on delivery and never see its failures.
"""
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Optional, Protocol
from uuid import UUID

import httpx
import structlog

from .config import Settings
from .exceptions import NotificationError
from .models import DeliveryResult, RecipientType
from .storage import InMemoryStorage

logger = structlog.get_logger(__name__)

# Delivery workers per dispatch worker. Timed-out sends still hold theirs.
_DELIVERY_HEADROOM = 2


class PushTransport(Protocol):
    def send(self, message: dict, timeout: float) -> dict:
        ...


class FcmPushTransport:
    """Sends messages through the FCM HTTP v1 API."""

    def __init__(self, settings: Settings, http_transport: Optional[httpx.BaseTransport] = None):
        self.endpoint = settings.fcm_endpoint
        self.access_token = settings.fcm_access_token
        self.http_transport = http_transport

    def send(self, message: dict, timeout: float) -> dict:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            with httpx.Client(timeout=timeout, transport=self.http_transport) as client:
                response = client.post(self.endpoint, json={"message": message}, headers=headers)
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            raise NotificationError("FCM timeout") from e
        except httpx.HTTPStatusError as e:
            raise NotificationError(f"FCM error {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise NotificationError(f"FCM request failed: {e}") from e


def _coerce_recipient_id(recipient: Any) -> Optional[UUID]:
    if isinstance(recipient, UUID):
        return recipient
    if hasattr(recipient, "id"):
        return _coerce_recipient_id(recipient.id)
    if isinstance(recipient, dict) and "id" in recipient:
        return _coerce_recipient_id(recipient["id"])
    try:
        return UUID(str(recipient))
    except ValueError:
        return None


class NotificationDispatcher:
    """
    Best-effort push delivery.

    ``notify`` hands a send to the dispatch pool and returns at once. Each send
    runs the transport on the delivery pool and waits at most the configured
    timeout. A transport call that overruns cannot be cancelled once it has
    started; it keeps its delivery worker until the transport's own timeout
    fires, so the delivery pool is sized with headroom over the dispatch pool.
    """

    def __init__(
        self,
        storage: InMemoryStorage,
        settings: Settings,
        transport: Optional[PushTransport] = None,
    ):
        self.storage = storage
        self.timeout_ms = settings.notification_timeout_ms
        self.transport = transport or FcmPushTransport(settings)
        self._dispatch_pool = ThreadPoolExecutor(
            max_workers=settings.notification_workers, thread_name_prefix="notify"
        )
        self._delivery_pool = ThreadPoolExecutor(
            max_workers=settings.notification_workers * _DELIVERY_HEADROOM, thread_name_prefix="push"
        )

    def send(
        self,
        title: str,
        body: str,
        recipient_type,
        recipient_id,
        timeout_ms: Optional[int] = None,
    ) -> DeliveryResult:
        try:
            if not recipient_type or recipient_id is None:
                return DeliveryResult(delivered=False, reason="missing recipient")

            try:
                kind = RecipientType(getattr(recipient_type, "value", recipient_type))
            except ValueError:
                return DeliveryResult(delivered=False, reason=f"unknown recipient type {recipient_type}")

            record = self._lookup(kind, _coerce_recipient_id(recipient_id))
            if not record:
                return DeliveryResult(delivered=False, reason="recipient not found")
            if not record.get("fcm_token"):
                return DeliveryResult(delivered=False, reason="no token")

            message = {
                "notification": {"title": title, "body": body},
                "token": record["fcm_token"],
            }
            response = self._deliver(message, (timeout_ms or self.timeout_ms) / 1000)
            return DeliveryResult(delivered=True, response=response)
        except FutureTimeoutError:
            return DeliveryResult(delivered=False, reason="timeout")
        except Exception as e:
            return DeliveryResult(delivered=False, reason=str(e) or e.__class__.__name__)

    def notify(
        self,
        title: str,
        body: str,
        recipient_type,
        recipient_id,
        timeout_ms: Optional[int] = None,
    ) -> Future:
        """Schedule ``send`` without waiting for it."""
        try:
            future = self._dispatch_pool.submit(
                self.send, title, body, recipient_type, recipient_id, timeout_ms
            )
        except RuntimeError:
            future = Future()
            future.set_result(DeliveryResult(delivered=False, reason="dispatcher closed"))

        def _log_outcome(done: Future) -> None:
            result = done.result()
            if result.delivered:
                logger.info("notification_sent", title=title, recipient_type=str(recipient_type))
            else:
                logger.warning(
                    "notification_failed",
                    title=title,
                    recipient_type=str(recipient_type),
                    recipient_id=str(recipient_id),
                    reason=result.reason,
                )

        future.add_done_callback(_log_outcome)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._dispatch_pool.shutdown(wait=wait)
        self._delivery_pool.shutdown(wait=wait)

    def _lookup(self, kind: RecipientType, recipient_id: Optional[UUID]) -> Optional[dict]:
        if recipient_id is None:
            return None
        if kind == RecipientType.USER:
            return self.storage.get_actor(recipient_id)
        return self.storage.get_distributer(recipient_id)

    def _deliver(self, message: dict, timeout: float) -> dict:
        future = self._delivery_pool.submit(self.transport.send, message, timeout)
        try:
            return future.result(timeout=timeout) or {}
        except FutureTimeoutError:
            future.cancel()
            raise
