"""
Order Lifecycle and Ledger Core

This package provides:
- Sequential human-readable IDs (ORDER-NN, DIST-NN, EMPLOYEE-NN)
- Order creation and status transitions: processing → completed / cancelled
- Atomic payment updates: an order's paid flag and its credit entry never diverge
- Paper dispatches with matching debit entries
- Distributer balances derived from immutable ledger entries
- Best-effort push notifications that never block or fail the triggering operation
"""

from .config import Settings, get_settings
from .models import (
    OrderStatus,
    OrderPaymentMode,
    TransactionType,
    Order,
    Transaction,
    PaperDispatch,
    LedgerSummary,
)
from .notifications import NotificationDispatcher
from .payments import PaymentCoordinator
from .service import DirectoryService, OrderService, build_services

__all__ = [
    "Settings",
    "get_settings",
    "OrderStatus",
    "OrderPaymentMode",
    "TransactionType",
    "Order",
    "Transaction",
    "PaperDispatch",
    "LedgerSummary",
    "NotificationDispatcher",
    "PaymentCoordinator",
    "DirectoryService",
    "OrderService",
    "build_services",
]
