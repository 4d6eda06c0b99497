from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderPaymentMode(str, Enum):
    COD = "cod"
    ONLINE_PAYMENT = "onlinepayment"
    CASH = "cash"
    UPI = "upi"
    BANK = "bank"
    CHEQUE = "cheque"
    OTHER = "other"


class TransactionType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class LedgerPaymentMode(str, Enum):
    CASH = "cash"
    BANK = "bank"
    UPI = "upi"
    CHEQUE = "cheque"
    OTHER = "other"
    CREDIT = "credit"


class DispatchMode(str, Enum):
    CREDIT = "credit"
    CASH = "cash"


class RecipientType(str, Enum):
    USER = "User"
    DISTRIBUTER = "Distributer"


class ActorContext(BaseModel):
    """Identity of the caller, as vouched for by the auth gateway."""

    actor_id: Optional[UUID] = None
    distributer_id: Optional[UUID] = None
    is_admin: bool = False


class Actor(BaseModel):
    id: UUID
    employee_id: str
    fullname: str
    phone_number: str
    fcm_token: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Distributer(BaseModel):
    id: UUID
    distributer_id: str
    fullname: str
    phone_number: str
    added_by: UUID
    fcm_token: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Order(BaseModel):
    id: UUID
    order_id: str
    distributer_id: UUID
    qty: Decimal
    unit: str
    note: Optional[str] = None
    total: Decimal
    paid: bool = False
    status: OrderStatus = OrderStatus.PENDING
    payment_mode: OrderPaymentMode
    assigned_to: Optional[UUID] = None
    cod: bool = False
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Transaction(BaseModel):
    id: UUID
    transaction_id: Optional[str] = None
    distributer_id: UUID
    transaction_add_by: Optional[UUID] = None
    order_id: Optional[UUID] = None
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    payment_mode: LedgerPaymentMode
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaperDispatch(BaseModel):
    id: UUID
    distributer_id: UUID
    sold_by: UUID
    qty: Decimal
    unit: str
    total_price: Decimal
    mode: DispatchMode
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Required fields on request payloads are checked by the service, which
# reports them as ValidationError.

class CreateOrderRequest(BaseModel):
    qty: Optional[Decimal] = None
    unit: Optional[str] = None
    note: Optional[str] = None
    total: Optional[Decimal] = None
    payment_mode: Optional[str] = None
    distributer_id: Optional[UUID] = Field(default=None, description="Admin only: place the order for this distributer")
    assigned_to: Optional[UUID] = Field(default=None, description="Admin only: override the default assignee")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "qty": 10,
            "unit": "kg",
            "note": "Deliver before Monday",
            "total": 500.00,
            "payment_mode": "cod"
        }
    })


class UpdateOrderStatusRequest(BaseModel):
    status: str


class UpdateOrderPaymentRequest(BaseModel):
    paid: Optional[bool] = None
    payment_mode: Optional[str] = None
    transaction_id: Optional[str] = None
    actor_id: Optional[UUID] = None


class ReassignOrderRequest(BaseModel):
    assigned_to: str


class RecordDispatchRequest(BaseModel):
    distributer_id: Optional[UUID] = None
    qty: Optional[Decimal] = None
    unit: Optional[str] = None
    total_price: Optional[Decimal] = None
    mode: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "distributer_id": "660e8400-e29b-41d4-a716-446655440001",
            "qty": 5,
            "unit": "kg",
            "total_price": 200.00,
            "mode": "cash"
        }
    })


class UpdatePushTokenRequest(BaseModel):
    fcm_token: str


class OrderView(BaseModel):
    order: Order
    distributer: Optional[Distributer] = None
    assignee: Optional[Actor] = None


class PaymentUpdateResult(BaseModel):
    order: Order
    transaction: Optional[Transaction] = None
    message: str


class DispatchResult(BaseModel):
    dispatch: PaperDispatch
    transaction: Transaction
    message: str


class TransactionPage(BaseModel):
    items: list[Transaction]
    total: int
    page: int
    limit: int


class LedgerSummary(BaseModel):
    distributer_id: UUID
    total_credit: Decimal
    total_debit: Decimal
    balance: Decimal
    count: int
    last_transaction_at: Optional[datetime] = None


class DeliveryResult(BaseModel):
    delivered: bool
    reason: Optional[str] = None
    response: Optional[dict] = None
