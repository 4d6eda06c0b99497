from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .exceptions import (
    ConflictError,
    NotFoundError,
    OrderLedgerError,
    TransactionAbortedError,
    ValidationError,
)
from .logging_config import setup_logging
from .models import (
    ActorContext,
    CreateOrderRequest,
    DispatchResult,
    Distributer,
    LedgerSummary,
    Order,
    OrderView,
    PaperDispatch,
    PaymentUpdateResult,
    ReassignOrderRequest,
    RecipientType,
    RecordDispatchRequest,
    TransactionPage,
    UpdateOrderPaymentRequest,
    UpdateOrderStatusRequest,
    UpdatePushTokenRequest,
)
from .service import Services, build_services


def _http_error(e: OrderLedgerError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, TransactionAbortedError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def _parse_header_uuid(value: Optional[str], header: str) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Invalid {header} header")


def get_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_distributer_id: Optional[str] = Header(default=None),
    x_admin: bool = Header(default=False),
) -> ActorContext:
    """Identity headers are set by the gateway after it verifies the caller's token."""
    actor = ActorContext(
        actor_id=_parse_header_uuid(x_actor_id, "X-Actor-Id"),
        distributer_id=_parse_header_uuid(x_distributer_id, "X-Distributer-Id"),
        is_admin=x_admin,
    )
    if actor.actor_id is None and actor.distributer_id is None and not actor.is_admin:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access denied. No identity provided.")
    return actor


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings)
    orders = services.orders
    directory = services.directory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.notifier.shutdown(wait=False)

    app = FastAPI(
        title="Order Ledger API",
        description="Order lifecycle, payment-to-ledger consistency and distributer balances",
        version="1.0.0",
        root_path=root_path,
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": settings.app_name}

    @app.post("/orders", response_model=Order, status_code=status.HTTP_201_CREATED, tags=["Orders"])
    def create_order(request: CreateOrderRequest, actor: ActorContext = Depends(get_actor)) -> Order:
        try:
            return orders.create_order(request, actor)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/orders", response_model=list[Order], tags=["Orders"])
    def list_orders(order_status: Optional[str] = None, actor: ActorContext = Depends(get_actor)) -> list[Order]:
        try:
            return orders.list_orders(actor, order_status)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/orders/{order_id}", response_model=OrderView, tags=["Orders"])
    def get_order(order_id: str, actor: ActorContext = Depends(get_actor)) -> OrderView:
        try:
            return orders.get_order(order_id)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.patch("/orders/{order_id}/status", response_model=OrderView, tags=["Orders"])
    def update_order_status(
        order_id: str, request: UpdateOrderStatusRequest, actor: ActorContext = Depends(get_actor)
    ) -> OrderView:
        try:
            return orders.update_status(order_id, request.status)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.patch("/orders/{order_id}/payment", response_model=PaymentUpdateResult, tags=["Orders"])
    def update_order_payment(
        order_id: str, request: UpdateOrderPaymentRequest, actor: ActorContext = Depends(get_actor)
    ) -> PaymentUpdateResult:
        try:
            return orders.update_payment(order_id, request, actor)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.patch("/orders/{order_id}/assignee", response_model=Order, tags=["Orders"])
    def reassign_order(
        order_id: str, request: ReassignOrderRequest, actor: ActorContext = Depends(get_actor)
    ) -> Order:
        try:
            return orders.reassign(order_id, request.assigned_to)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.post("/dispatches", response_model=DispatchResult, status_code=status.HTTP_201_CREATED, tags=["Dispatches"])
    def record_dispatch(request: RecordDispatchRequest, actor: ActorContext = Depends(get_actor)) -> DispatchResult:
        try:
            return orders.record_dispatch(request, actor)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/dispatches", response_model=list[PaperDispatch], tags=["Dispatches"])
    def list_dispatches(actor: ActorContext = Depends(get_actor)) -> list[PaperDispatch]:
        try:
            return orders.list_dispatches(actor.actor_id)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/dispatches/today", response_model=list[PaperDispatch], tags=["Dispatches"])
    def list_todays_dispatches(actor: ActorContext = Depends(get_actor)) -> list[PaperDispatch]:
        try:
            return orders.list_dispatches(actor.actor_id, today_only=True)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/transactions", response_model=TransactionPage, tags=["Ledger"])
    def list_transactions(
        page: int = 1,
        limit: int = 20,
        type: Optional[str] = None,
        actor: ActorContext = Depends(get_actor),
    ) -> TransactionPage:
        try:
            return orders.list_transactions(actor, page=page, limit=limit, type=type)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/distributers/by-added-by", response_model=list[Distributer], tags=["Distributers"])
    def list_my_distributers(actor: ActorContext = Depends(get_actor)) -> list[Distributer]:
        try:
            return directory.list_distributers(actor.actor_id)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.get("/distributers/{distributer_id}/summary", response_model=LedgerSummary, tags=["Ledger"])
    def summarize_ledger(distributer_id: str, actor: ActorContext = Depends(get_actor)) -> LedgerSummary:
        try:
            return orders.summarize_distributer_ledger(distributer_id)
        except OrderLedgerError as e:
            raise _http_error(e)

    @app.patch("/push-token", tags=["Notifications"])
    def update_push_token(request: UpdatePushTokenRequest, actor: ActorContext = Depends(get_actor)):
        if actor.distributer_id is not None:
            recipient_type, recipient_id = RecipientType.DISTRIBUTER, actor.distributer_id
        else:
            recipient_type, recipient_id = RecipientType.USER, actor.actor_id
        try:
            token = directory.update_push_token(recipient_type, recipient_id, request.fcm_token)
        except OrderLedgerError as e:
            raise _http_error(e)
        return {"ok": True, "message": "FCM token updated", "fcm_token": token}

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
