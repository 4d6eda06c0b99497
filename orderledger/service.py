from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from . import entries
from .config import Settings
from .exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    OrderLedgerError,
    TransactionAbortedError,
    ValidationError,
)
from .ids import distributer_ids, employee_ids, order_ids
from .models import (
    Actor,
    ActorContext,
    CreateOrderRequest,
    DispatchMode,
    DispatchResult,
    Distributer,
    LedgerSummary,
    Order,
    OrderStatus,
    OrderView,
    PaperDispatch,
    PaymentUpdateResult,
    RecipientType,
    RecordDispatchRequest,
    Transaction,
    TransactionPage,
    TransactionType,
    UpdateOrderPaymentRequest,
)
from .notifications import NotificationDispatcher, PushTransport
from .payments import PaymentCoordinator, parse_order_payment_mode
from .storage import InMemoryStorage

logger = structlog.get_logger(__name__)

TransitionPolicy = Callable[[OrderStatus, OrderStatus], bool]

_FORWARD_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


def allow_any_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return True


def forward_only_transitions(current: OrderStatus, target: OrderStatus) -> bool:
    return current == target or target in _FORWARD_TRANSITIONS[current]


TRANSITION_POLICIES: dict[str, TransitionPolicy] = {
    "permissive": allow_any_transition,
    "strict": forward_only_transitions,
}


def _as_uuid(value, label: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}: {value!r}")


def _parse_status(value) -> OrderStatus:
    try:
        return OrderStatus(str(getattr(value, "value", value)).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid status '{value}'. Must be one of: {allowed}")


def _require_positive(**amounts) -> None:
    for label, value in amounts.items():
        if value <= 0:
            raise ValidationError(f"{label} must be greater than zero, got {value}")


class DirectoryService:
    """Actors and distributers, plus their push tokens."""

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def add_actor(self, fullname: str, phone_number: str, fcm_token: Optional[str] = None) -> Actor:
        if not fullname or not phone_number:
            raise ValidationError("fullname and phone_number are required")
        data = {
            "id": uuid4(),
            "employee_id": employee_ids.next_id(self.storage.employee_ids()),
            "fullname": fullname,
            "phone_number": phone_number,
            "fcm_token": fcm_token,
            "created_at": datetime.now(timezone.utc),
        }
        actor = Actor(**self.storage.insert_actor(data))
        logger.info("actor_added", employee_id=actor.employee_id)
        return actor

    def add_distributer(
        self,
        fullname: str,
        phone_number: str,
        added_by: UUID,
        fcm_token: Optional[str] = None,
    ) -> Distributer:
        if not fullname or not phone_number:
            raise ValidationError("fullname and phone_number are required")
        added_by = _as_uuid(added_by, "added_by")
        if not self.storage.get_actor(added_by):
            raise NotFoundError(f"Actor {added_by} not found")
        data = {
            "id": uuid4(),
            "distributer_id": distributer_ids.next_id(self.storage.distributer_ids()),
            "fullname": fullname,
            "phone_number": phone_number,
            "added_by": added_by,
            "fcm_token": fcm_token,
            "created_at": datetime.now(timezone.utc),
        }
        distributer = Distributer(**self.storage.insert_distributer(data))
        logger.info("distributer_added", distributer_id=distributer.distributer_id, added_by=str(added_by))
        return distributer

    def list_distributers(self, added_by) -> list[Distributer]:
        """Distributers onboarded by one actor, newest first."""
        added_by = _as_uuid(added_by, "added_by")
        distributers = [
            Distributer(**d) for d in self.storage.find_distributers(lambda d: d["added_by"] == added_by)
        ]
        distributers.sort(key=lambda d: d.created_at, reverse=True)
        return distributers

    def update_push_token(self, recipient_type, recipient_id, token: str) -> Optional[str]:
        if not token or not isinstance(token, str):
            raise ValidationError("fcm_token is required")
        recipient_id = _as_uuid(recipient_id, "recipient id")
        try:
            kind = RecipientType(getattr(recipient_type, "value", recipient_type))
        except ValueError:
            raise ValidationError(f"Unknown recipient type {recipient_type!r}")
        if kind == RecipientType.USER:
            record = self.storage.get_actor(recipient_id)
            save = self.storage.save_actor
        else:
            record = self.storage.get_distributer(recipient_id)
            save = self.storage.save_distributer
        if not record:
            raise NotFoundError(f"{kind.value} {recipient_id} not found")
        record["fcm_token"] = token
        save(record)
        return token


class OrderService:
    def __init__(
        self,
        storage: InMemoryStorage,
        settings: Settings,
        notifier: Optional[NotificationDispatcher] = None,
        transition_policy: Optional[TransitionPolicy] = None,
    ):
        self.storage = storage
        self.notifier = notifier
        self.page_max = settings.transaction_page_max
        self.transition_policy = transition_policy or TRANSITION_POLICIES[settings.order_transition_policy]
        self.payments = PaymentCoordinator(storage, notifier)

    def create_order(self, request: CreateOrderRequest, actor: ActorContext) -> Order:
        if not request.qty or not request.unit or not request.total or not request.payment_mode:
            raise ValidationError("Missing required fields: qty, unit, total and payment_mode are required")
        _require_positive(qty=request.qty, total=request.total)
        payment_mode = parse_order_payment_mode(request.payment_mode)

        if actor.is_admin:
            distributer_ref = request.distributer_id or actor.distributer_id
        else:
            distributer_ref = actor.distributer_id
        if distributer_ref is None:
            raise ValidationError("Only distributers can place orders")

        distributer_data = self.storage.get_distributer(distributer_ref)
        if not distributer_data:
            raise NotFoundError(f"Distributer {distributer_ref} not found")

        assigned_to = distributer_data["added_by"]
        if actor.is_admin and request.assigned_to is not None:
            assigned_to = request.assigned_to

        now = datetime.now(timezone.utc)
        order = Order(
            id=uuid4(),
            order_id=order_ids.next_id(self.storage.order_ids()),
            distributer_id=distributer_ref,
            qty=request.qty,
            unit=request.unit,
            note=request.note,
            total=request.total,
            paid=False,
            status=OrderStatus.PROCESSING,
            payment_mode=payment_mode,
            assigned_to=assigned_to,
            cod=payment_mode.value == "cod",
            created_at=now,
            updated_at=now,
        )
        self.storage.insert_order(order.model_dump())
        logger.info(
            "order_created",
            order_id=order.order_id,
            distributer=distributer_data["distributer_id"],
            assigned_to=str(assigned_to),
            total=str(order.total),
        )

        self._notify(
            "New order assigned",
            f"Order {order.order_id} ({order.qty} {order.unit}) from {distributer_data['fullname']}.",
            RecipientType.USER,
            assigned_to,
        )
        return order

    def get_order(self, order_id) -> OrderView:
        return self._expand(self._load_order(order_id))

    def list_orders(self, actor: ActorContext, status: Optional[str] = None) -> list[Order]:
        if actor.distributer_id is not None and not actor.is_admin:
            predicate = lambda o: o["distributer_id"] == actor.distributer_id
        elif actor.is_admin:
            predicate = lambda o: True
        elif actor.actor_id is not None:
            predicate = lambda o: o["assigned_to"] == actor.actor_id
        else:
            raise ValidationError("Actor identity is required")

        wanted = _parse_status(status) if status else None
        orders = [
            Order(**o) for o in self.storage.find_orders(predicate)
            if wanted is None or o["status"] == wanted
        ]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def update_status(self, order_id, status) -> OrderView:
        target = _parse_status(status)
        with self.storage.unit_of_work() as uow:
            order = self._load_order(order_id)
            if not self.transition_policy(order.status, target):
                raise InvalidStateTransitionError(
                    f"Cannot move order {order.order_id} from {order.status.value} to {target.value}"
                )

            previous = order.status
            order = Order(**uow.update_order_fields(
                order.id, status=target, updated_at=datetime.now(timezone.utc)
            ))
        logger.info("order_status_updated", order_id=order.order_id, previous=previous.value, status=target.value)

        self._notify(
            "Order update",
            f"Your order {order.order_id} is now {target.value}.",
            RecipientType.DISTRIBUTER,
            order.distributer_id,
        )
        return self._expand(order)

    def update_payment(
        self,
        order_id,
        request: UpdateOrderPaymentRequest,
        actor: Optional[ActorContext] = None,
    ) -> PaymentUpdateResult:
        return self.payments.update_payment(_as_uuid(order_id, "order id"), request, actor)

    def reassign(self, order_id, assignee_id) -> Order:
        order_uuid = _as_uuid(order_id, "order id")
        assignee = _as_uuid(assignee_id, "assignee id")
        with self.storage.unit_of_work() as uow:
            order = self._load_order(order_uuid)
            order = Order(**uow.update_order_fields(
                order.id, assigned_to=assignee, updated_at=datetime.now(timezone.utc)
            ))
        logger.info("order_reassigned", order_id=order.order_id, assigned_to=str(assignee))

        self._notify(
            "Order assigned to you",
            f"Order {order.order_id} has been assigned to you.",
            RecipientType.USER,
            assignee,
        )
        return order

    def record_dispatch(self, request: RecordDispatchRequest, actor: ActorContext) -> DispatchResult:
        if (
            not request.distributer_id
            or not request.qty
            or not request.unit
            or not request.total_price
            or not request.mode
        ):
            raise ValidationError("Missing required fields: distributer_id, qty, unit, total_price and mode are required")
        _require_positive(qty=request.qty, total_price=request.total_price)
        try:
            mode = DispatchMode(str(request.mode).strip().lower())
        except ValueError:
            raise ValidationError(f"Invalid dispatch mode '{request.mode}'. Must be one of: credit, cash")
        if actor.actor_id is None:
            raise ValidationError("Dispatches must be recorded by an actor")

        distributer_data = self.storage.get_distributer(request.distributer_id)
        if not distributer_data:
            raise NotFoundError(f"Distributer {request.distributer_id} not found")

        dispatch = PaperDispatch(
            id=uuid4(),
            distributer_id=request.distributer_id,
            sold_by=actor.actor_id,
            qty=request.qty,
            unit=request.unit,
            total_price=request.total_price,
            mode=mode,
            created_at=datetime.now(timezone.utc),
        )
        debit = entries.debit_entry_for_dispatch(dispatch)
        try:
            with self.storage.unit_of_work() as uow:
                uow.insert_dispatch(dispatch.model_dump())
                uow.insert_transaction(debit.model_dump())
        except OrderLedgerError:
            raise
        except Exception as e:
            logger.error("dispatch_aborted", distributer=distributer_data["distributer_id"], error=str(e))
            raise TransactionAbortedError(f"Dispatch was rolled back: {e}", original_error=e) from e

        logger.info(
            "dispatch_recorded",
            distributer=distributer_data["distributer_id"],
            sold_by=str(actor.actor_id),
            total_price=str(dispatch.total_price),
            mode=mode.value,
        )
        self._notify(
            "Paper dispatched",
            f"{dispatch.qty} {dispatch.unit} dispatched to you for {dispatch.total_price}.",
            RecipientType.DISTRIBUTER,
            dispatch.distributer_id,
        )
        return DispatchResult(
            dispatch=dispatch,
            transaction=debit,
            message="Paper dispatched and transaction created successfully",
        )

    def list_dispatches(self, seller_id, today_only: bool = False) -> list[PaperDispatch]:
        seller = _as_uuid(seller_id, "seller id")
        today = datetime.now(timezone.utc).date()
        dispatches = [
            PaperDispatch(**d)
            for d in self.storage.find_dispatches(lambda d: d["sold_by"] == seller)
            if not today_only or d["created_at"].date() == today
        ]
        dispatches.sort(key=lambda d: d.created_at, reverse=True)
        return dispatches

    def list_transactions(
        self,
        actor: ActorContext,
        page: int = 1,
        limit: int = 20,
        type: Optional[str] = None,
    ) -> TransactionPage:
        if actor.distributer_id is not None:
            owner = ("distributer_id", actor.distributer_id)
        elif actor.actor_id is not None:
            owner = ("transaction_add_by", actor.actor_id)
        else:
            raise ValidationError("Actor identity is required")

        page = max(1, int(page))
        limit = max(1, min(self.page_max, int(limit)))
        wanted = None
        if type and str(type).lower() in (t.value for t in TransactionType):
            wanted = TransactionType(str(type).lower())

        field, value = owner
        matches = [
            Transaction(**t)
            for t in self.storage.find_transactions(lambda t: t[field] == value)
            if wanted is None or t["type"] == wanted
        ]
        matches.sort(key=lambda t: t.created_at, reverse=True)
        start = (page - 1) * limit
        return TransactionPage(items=matches[start:start + limit], total=len(matches), page=page, limit=limit)

    def summarize_distributer_ledger(self, distributer_id) -> LedgerSummary:
        distributer = _as_uuid(distributer_id, "distributer id")
        entries_ = self.storage.find_transactions(lambda t: t["distributer_id"] == distributer)

        total_credit = sum((t["amount"] for t in entries_ if t["type"] == TransactionType.CREDIT), Decimal("0"))
        total_debit = sum((t["amount"] for t in entries_ if t["type"] == TransactionType.DEBIT), Decimal("0"))
        last_entry = max(entries_, key=lambda t: t["created_at"]) if entries_ else None

        return LedgerSummary(
            distributer_id=distributer,
            total_credit=total_credit,
            total_debit=total_debit,
            balance=total_credit - total_debit,
            count=len(entries_),
            last_transaction_at=last_entry["created_at"] if last_entry else None,
        )

    def _load_order(self, order_id) -> Order:
        order_uuid = _as_uuid(order_id, "order id")
        order_data = self.storage.get_order(order_uuid)
        if not order_data:
            raise NotFoundError(f"Order {order_uuid} not found")
        return Order(**order_data)

    def _expand(self, order: Order) -> OrderView:
        distributer = self.storage.get_distributer(order.distributer_id)
        assignee = self.storage.get_actor(order.assigned_to) if order.assigned_to else None
        return OrderView(
            order=order,
            distributer=Distributer(**distributer) if distributer else None,
            assignee=Actor(**assignee) if assignee else None,
        )

    def _notify(self, title: str, body: str, recipient_type: RecipientType, recipient_id) -> None:
        if self.notifier is not None and recipient_id is not None:
            self.notifier.notify(title, body, recipient_type, recipient_id)


@dataclass
class Services:
    settings: Settings
    storage: InMemoryStorage
    notifier: NotificationDispatcher
    directory: DirectoryService
    orders: OrderService


def build_services(
    settings: Settings,
    storage: Optional[InMemoryStorage] = None,
    transport: Optional[PushTransport] = None,
    transition_policy: Optional[TransitionPolicy] = None,
) -> Services:
    """Wire every component from one settings object."""
    storage = storage or InMemoryStorage()
    notifier = NotificationDispatcher(storage, settings, transport=transport)
    return Services(
        settings=settings,
        storage=storage,
        notifier=notifier,
        directory=DirectoryService(storage),
        orders=OrderService(storage, settings, notifier=notifier, transition_policy=transition_policy),
    )
