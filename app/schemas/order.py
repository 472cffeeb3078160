# app/schemas/order.py
"""
Schemas de pedidos

La vista de un pedido es una unión discriminada por `status`: solo la
variante que espera pago tiene vencimiento, así que un pedido en cola
con vencimiento no se puede representar.
"""
from datetime import datetime, date
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, validator
from pydantic.alias_generators import to_camel

from app.models.order import PaymentMethod, PaymentStatus


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ============================================
# REQUESTS
# ============================================

class OrderItemIn(CamelModel):
    menu_id: int
    quantity: int


class PlaceOrderRequest(CamelModel):
    items: List[OrderItemIn]
    payment_method: PaymentMethod
    notes: Optional[str] = None


class ManualOrderRequest(CamelModel):
    customer_name: str
    items: List[OrderItemIn]
    payment_method: PaymentMethod = PaymentMethod.MANUAL
    notes: Optional[str] = None

    @validator('customer_name')
    def name_must_not_be_empty(cls, v):
        if not v or not v.strip():
            raise ValueError('Nombre del cliente es obligatorio')
        return v.strip()


class PaymentProofRequest(CamelModel):
    proof: Any

    @validator('proof')
    def proof_required(cls, v):
        if v is None or v == "" or v == {}:
            raise ValueError('Comprobante de pago vacío')
        return v


# ============================================
# RESPONSES
# ============================================

class PlaceOrderResponse(CamelModel):
    success: bool = True
    order_id: int
    status: str
    expiry_time: Optional[datetime] = None


class SweepResponse(CamelModel):
    success: bool = True
    cancelled_count: int


class OrderLine(CamelModel):
    menu_id: int
    name: str
    price: int
    quantity: int
    subtotal: int
    image: Optional[str] = None


class OrderBase(CamelModel):
    id: int
    user_email: str
    user_name: str
    items: List[OrderLine]
    total_amount: int
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_proof: Optional[Any] = None
    is_manual_order: bool = False
    notes: Optional[str] = None
    created_at: datetime


class AwaitingPaymentOrder(OrderBase):
    status: Literal["awaiting_payment"]
    awaiting_payment_at: datetime
    expiry_time: datetime
    seconds_remaining: int = 0


class QueuedOrder(OrderBase):
    status: Literal["pending"]


class CompletedOrder(OrderBase):
    status: Literal["completed"]
    completed_at: datetime


class CancelledOrder(OrderBase):
    status: Literal["cancelled"]
    cancelled_at: datetime
    cancel_reason: Optional[str] = None


OrderView = Annotated[
    Union[AwaitingPaymentOrder, QueuedOrder, CompletedOrder, CancelledOrder],
    Field(discriminator="status"),
]

_order_view_adapter = TypeAdapter(OrderView)


def to_order_view(order, now: Optional[datetime] = None):
    """Convierte una fila Order en su variante según el estado."""
    view = _order_view_adapter.validate_python(order, from_attributes=True)
    if isinstance(view, AwaitingPaymentOrder) and now is not None:
        remaining = int((view.expiry_time - now).total_seconds())
        view.seconds_remaining = max(0, remaining)
    return view


class DailyStats(CamelModel):
    stats_date: date = Field(alias="date")
    total_orders: int
    total_revenue: int
    total_items: int
    average_order_value: float
