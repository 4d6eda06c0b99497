"""
Payment transaction coordinator.

Marking an order paid and writing its credit entry happen inside one unit of
work: either both are committed or neither is. Only a stored ``paid`` flag
going from false to true produces a credit, so repeating a payment update is
harmless.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import structlog

from . import entries
from .exceptions import (
    NotFoundError,
    OrderLedgerError,
    TransactionAbortedError,
    ValidationError,
)
from .models import (
    ActorContext,
    Order,
    OrderPaymentMode,
    PaymentUpdateResult,
    RecipientType,
    Transaction,
    UpdateOrderPaymentRequest,
)
from .notifications import NotificationDispatcher
from .storage import InMemoryStorage

logger = structlog.get_logger(__name__)

ORDER_PAYMENT_MODES = tuple(mode.value for mode in OrderPaymentMode)


def parse_order_payment_mode(value) -> OrderPaymentMode:
    mode = str(getattr(value, "value", value)).strip().lower()
    if mode not in ORDER_PAYMENT_MODES:
        raise ValidationError(
            f"Invalid payment mode '{value}'. Must be one of: {', '.join(ORDER_PAYMENT_MODES)}"
        )
    return OrderPaymentMode(mode)


class PaymentCoordinator:
    def __init__(
        self,
        storage: InMemoryStorage,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.storage = storage
        self.notifier = notifier

    def update_payment(
        self,
        order_id: UUID,
        request: UpdateOrderPaymentRequest,
        actor: Optional[ActorContext] = None,
    ) -> PaymentUpdateResult:
        payment_mode = None
        if request.payment_mode is not None:
            payment_mode = parse_order_payment_mode(request.payment_mode)

        try:
            with self.storage.unit_of_work() as uow:
                order_data = uow.get_order(order_id)
                if not order_data:
                    raise NotFoundError(f"Order {order_id} not found")

                order, credit = self._apply(order_data, request, payment_mode, actor)
                uow.save_order(order.model_dump())
                if credit is not None:
                    uow.insert_transaction(credit.model_dump())
        except OrderLedgerError:
            raise
        except Exception as e:
            logger.error("payment_update_aborted", order_id=str(order_id), error=str(e))
            raise TransactionAbortedError(
                f"Payment update for order {order_id} was rolled back: {e}", original_error=e
            ) from e

        logger.info(
            "payment_recorded",
            order_id=order.order_id,
            paid=order.paid,
            payment_mode=order.payment_mode.value,
            credit_created=credit is not None,
        )
        if credit is not None:
            self._notify_distributer(order)

        return PaymentUpdateResult(
            order=order,
            transaction=credit,
            message="Payment recorded and ledger credited" if credit else "Payment details updated",
        )

    def _apply(
        self,
        order_data: dict,
        request: UpdateOrderPaymentRequest,
        payment_mode: Optional[OrderPaymentMode],
        actor: Optional[ActorContext],
    ) -> tuple[Order, Optional[Transaction]]:
        now = datetime.now(timezone.utc)
        current = Order(**order_data)
        should_credit = request.paid is True and not current.paid

        if current.paid and request.paid is True:
            return current, None

        changes: dict = {"updated_at": now}
        if payment_mode is not None:
            changes["payment_mode"] = payment_mode
        if request.paid is not None:
            changes["paid"] = request.paid
        if request.transaction_id:
            changes["transaction_id"] = request.transaction_id
        elif request.paid is True:
            changes["transaction_id"] = current.transaction_id or entries.generate_transaction_id(
                payment_mode or current.payment_mode, now=now
            )
        if should_credit:
            changes["paid_at"] = now

        updated = current.model_copy(update=changes)

        credit = None
        if should_credit:
            credit = entries.credit_entry_for_order(
                updated,
                actor_id=request.actor_id,
                request_actor_id=actor.actor_id if actor else None,
                now=now,
            )
        return updated, credit

    def _notify_distributer(self, order: Order) -> None:
        if self.notifier is None:
            return
        self.notifier.notify(
            "Payment received",
            f"Payment of {order.total} for order {order.order_id} has been recorded.",
            RecipientType.DISTRIBUTER,
            order.distributer_id,
        )
