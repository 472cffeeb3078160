"""
Modelos Order y OrderItem

Los nombres de columna persistidos (status, paymentMethod, createdAt,
awaitingPaymentAt, expiryTime, completedAt, cancelledAt...) se mantienen
exactos por compatibilidad con los pedidos existentes.
"""
import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, JSON, CheckConstraint
from sqlalchemy.orm import relationship
from app.core.database import Base, UTCDateTime


class OrderStatus(str, enum.Enum):
    AWAITING_PAYMENT = "awaiting_payment"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    SHOPEEPAY = "shopeepay"
    TRANSFER = "transfer"
    E_MONEY = "e-money"
    MANUAL = "manual"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


TERMINAL_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('awaiting_payment', 'pending', 'completed', 'cancelled')",
            name="ck_orders_status",
        ),
        CheckConstraint(
            "\"paymentMethod\" IN ('cash', 'shopeepay', 'transfer', 'e-money', 'manual')",
            name="ck_orders_payment_method",
        ),
        CheckConstraint(
            "\"paymentStatus\" IN ('pending', 'paid')",
            name="ck_orders_payment_status",
        ),
        # expiryTime existe si y solo si el pedido espera pago
        CheckConstraint(
            "(status = 'awaiting_payment' AND \"expiryTime\" IS NOT NULL)"
            " OR (status <> 'awaiting_payment' AND \"expiryTime\" IS NULL)",
            name="ck_orders_expiry_only_awaiting_payment",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Cliente
    user_email = Column("userEmail", String(255), nullable=False, index=True)
    user_name = Column("userName", String(100), nullable=False)

    # Montos (inmutable después de crear)
    total_amount = Column("totalAmount", Integer, nullable=False)

    # Pago
    payment_method = Column("paymentMethod", String(20), nullable=False)
    payment_status = Column("paymentStatus", String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_proof = Column("paymentProof", JSON, nullable=True)

    # Estado
    status = Column(String(20), nullable=False, index=True)
    is_manual_order = Column("isManualOrder", Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    # Cancelación
    cancel_reason = Column("cancelReason", String(100), nullable=True)
    cancelled_by = Column("cancelledBy", Integer, ForeignKey("users.id"), nullable=True)

    # Timestamps
    created_at = Column("createdAt", UTCDateTime, nullable=False, index=True)
    awaiting_payment_at = Column("awaitingPaymentAt", UTCDateTime, nullable=True)
    expiry_time = Column("expiryTime", UTCDateTime, nullable=True, index=True)
    completed_at = Column("completedAt", UTCDateTime, nullable=True, index=True)
    cancelled_at = Column("cancelledAt", UTCDateTime, nullable=True)
    updated_at = Column("updatedAt", UTCDateTime, nullable=True)

    # Relaciones
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )

    def __repr__(self):
        return f"<Order #{self.id} {self.status} total:{self.total_amount}>"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class OrderItem(Base):
    """Copia del menú al momento de pedir; no se re-une con el menú vivo."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Sin FK: el item del menú puede borrarse y el pedido histórico se conserva
    menu_id = Column("menuId", Integer, nullable=False)
    name = Column(String(200), nullable=False)
    price = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    subtotal = Column(Integer, nullable=False)
    image = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="items")
