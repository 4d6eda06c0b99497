"""
Ledger entry construction.

Orders speak a wider payment-mode vocabulary than the ledger does, so every
order-derived entry goes through ``normalize_payment_mode`` first.
"""
import random
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from .models import (
    LedgerPaymentMode,
    Order,
    PaperDispatch,
    Transaction,
    TransactionType,
)

_LEDGER_MODE_ALIASES = {
    "cod": "cash",
    "onlinepayment": "other",
}

_TRANSACTION_ID_PREFIXES = {
    "upi": "UPI",
    "cheque": "CHQ",
    "bank": "BNK",
    "cash": "CSH",
}


def normalize_payment_mode(mode) -> str:
    value = str(getattr(mode, "value", mode)).lower()
    return _LEDGER_MODE_ALIASES.get(value, value)


def generate_transaction_id(
    payment_mode,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """Display-only reference like ``UPI48213921``; not unique."""
    now = now or datetime.now(timezone.utc)
    rng = rng or random
    millis = int(now.timestamp() * 1000)
    suffix = f"{rng.randint(1000, 9999)}{str(millis)[-4:]}"
    mode = str(getattr(payment_mode, "value", payment_mode) or "").lower()
    return f"{_TRANSACTION_ID_PREFIXES.get(mode, 'TXN')}{suffix}"


def _first_defined(*candidates):
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def credit_entry_for_order(
    order: Order,
    actor_id: Optional[UUID] = None,
    request_actor_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> Transaction:
    return Transaction(
        id=uuid4(),
        transaction_id=order.transaction_id,
        distributer_id=order.distributer_id,
        transaction_add_by=_first_defined(actor_id, request_actor_id, order.assigned_to),
        order_id=order.id,
        type=TransactionType.CREDIT,
        amount=order.total,
        payment_mode=LedgerPaymentMode(normalize_payment_mode(order.payment_mode)),
        created_at=now or datetime.now(timezone.utc),
    )


def debit_entry_for_dispatch(dispatch: PaperDispatch, now: Optional[datetime] = None) -> Transaction:
    return Transaction(
        id=uuid4(),
        distributer_id=dispatch.distributer_id,
        transaction_add_by=dispatch.sold_by,
        type=TransactionType.DEBIT,
        amount=dispatch.total_price,
        payment_mode=LedgerPaymentMode(dispatch.mode.value),
        created_at=now or dispatch.created_at,
    )
