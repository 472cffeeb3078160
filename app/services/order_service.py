# app/services/order_service.py
"""
Servicio de ciclo de vida de pedidos - NeedTea

Estados:
    awaiting_payment -> pending -> completed
    awaiting_payment -> cancelled
    pending          -> cancelled

completed y cancelled son terminales. Cada transición es una unidad de
trabajo: la actualización condicional del pedido y el ajuste de stock se
confirman en el mismo commit o no se confirma nada.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import utcnow
from app.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    OrderError,
    UnauthorizedError,
    ValidationError,
)
from app.models.menu_item import MenuItem
from app.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from app.models.user import User
from app.schemas.order import DailyStats, to_order_view
from app.services.order_store import (
    OrderFilter,
    OrderSort,
    OrderStore,
    UpdateOutcome,
    run_with_retry,
)
from app.services.stock_ledger import StockLedger, StockLine

logger = logging.getLogger(__name__)

# Timezone Indonesia (WIB, UTC+7)
TZ_WIB = timezone(timedelta(hours=7))

# Métodos que no abren ventana de pago: el pedido entra directo a la cola
WINDOWLESS_METHODS = (PaymentMethod.CASH, PaymentMethod.MANUAL)

EXPIRED_REASON = "expired"


def queue_sort(status: OrderStatus) -> OrderSort:
    if status == OrderStatus.COMPLETED:
        return OrderSort(field="completedAt", descending=True)
    if status == OrderStatus.CANCELLED:
        return OrderSort(field="createdAt", descending=True)
    return OrderSort(field="createdAt")


@dataclass
class CustomerIdentity:
    email: str
    name: str


@dataclass
class ActorContext:
    """
    Quién ejecuta la acción.

    role_hint viene del token del cliente y solo sirve para la UI; los
    permisos se verifican releyendo el usuario en la base.
    """
    user_id: Optional[int]
    email: str
    name: str
    role_hint: Optional[str] = None

    @classmethod
    def from_user(cls, user: User) -> "ActorContext":
        return cls(user_id=user.id, email=user.email, name=user.name, role_hint=user.role)

    @property
    def is_system(self) -> bool:
        return self.user_id is None


@dataclass
class PlacedOrder:
    order_id: int
    status: str
    expiry_time: Optional[datetime] = None


class OrderService:
    """Máquina de estados de pedidos + reservas de stock"""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        events=None,
    ):
        self.db = db
        self.clock = clock
        self.events = events
        self.store = OrderStore(db, events)
        self.ledger = StockLedger(db)

    # ============================================
    # CREACIÓN
    # ============================================

    def place_order(
        self,
        customer: CustomerIdentity,
        items: Iterable[Any],
        payment_method: str,
        notes: Optional[str] = None,
    ) -> PlacedOrder:
        """Checkout de autoservicio (ventana de 15 minutos si no es efectivo)"""
        method = self._parse_payment_method(payment_method)
        if method == PaymentMethod.MANUAL:
            raise ValidationError("El método 'manual' solo lo usa el personal")
        if not customer.email or not customer.name:
            raise ValidationError("Cliente sin email o nombre")

        return self._create_order(
            email=customer.email,
            name=customer.name,
            items=items,
            method=method,
            notes=notes,
            is_manual=False,
            window_minutes=settings.SELF_SERVICE_PAYMENT_WINDOW_MINUTES,
        )

    def create_manual_order(
        self,
        customer_name: str,
        items: Iterable[Any],
        payment_method: str,
        notes: Optional[str],
        actor: ActorContext,
    ) -> PlacedOrder:
        """Pedido cargado por el personal (ventana de 30 minutos si no es efectivo)"""
        self.require_staff(actor)

        method = self._parse_payment_method(payment_method)
        if not customer_name or not customer_name.strip():
            raise ValidationError("Nombre del cliente es obligatorio")

        return self._create_order(
            email=settings.MANUAL_ORDER_EMAIL,
            name=customer_name.strip(),
            items=items,
            method=method,
            notes=notes,
            is_manual=True,
            window_minutes=settings.MANUAL_PAYMENT_WINDOW_MINUTES,
        )

    def _create_order(
        self,
        email: str,
        name: str,
        items: Iterable[Any],
        method: PaymentMethod,
        notes: Optional[str],
        is_manual: bool,
        window_minutes: int,
    ) -> PlacedOrder:
        requested = self._validate_items(items)

        def work():
            menu = {
                m.id: m
                for m in self.db.query(MenuItem).filter(MenuItem.id.in_([r.menu_id for r in requested])).all()
            }
            unknown = [r.menu_id for r in requested if r.menu_id not in menu]
            if unknown:
                raise ValidationError(
                    f"Items de menú no encontrados: {', '.join(str(u) for u in unknown)}",
                    errors=[{"menuId": u} for u in unknown],
                )

            # Todo o nada: verifica y descuenta antes de crear el pedido
            self.ledger.reserve(
                StockLine(r.menu_id, r.quantity, menu[r.menu_id].name) for r in requested
            )

            now = self.clock()
            opens_window = method not in WINDOWLESS_METHODS

            order = Order(
                user_email=email,
                user_name=name,
                payment_method=method.value,
                payment_status=PaymentStatus.PENDING.value,
                status=(OrderStatus.AWAITING_PAYMENT if opens_window else OrderStatus.PENDING).value,
                is_manual_order=is_manual,
                notes=notes,
                created_at=now,
                awaiting_payment_at=now if opens_window else None,
                expiry_time=now + timedelta(minutes=window_minutes) if opens_window else None,
            )
            total = 0
            for position, r in enumerate(requested):
                item = menu[r.menu_id]
                subtotal = item.price * r.quantity
                total += subtotal
                order.items.append(OrderItem(
                    position=position,
                    menu_id=item.id,
                    name=item.name,
                    price=item.price,
                    quantity=r.quantity,
                    subtotal=subtotal,
                    image=item.image,
                ))
            order.total_amount = total

            self.store.create_order(order)
            return order

        # Crear no se reintenta: un commit ambiguo podría duplicar el pedido
        order = self._transact(work, label="crear pedido", attempts=1)

        placed = PlacedOrder(order_id=order.id, status=order.status, expiry_time=order.expiry_time)
        logger.info(
            f"[Orders] ✅ Pedido #{placed.order_id} creado ({placed.status}, {method.value}, "
            f"manual={is_manual}, vence={placed.expiry_time})"
        )
        self._publish()
        return placed

    # ============================================
    # TRANSICIONES
    # ============================================

    def cancel_order(self, order_id: int, actor: ActorContext, reason: Optional[str] = None):
        """Cancela un pedido activo y devuelve su stock (cliente o personal)"""

        def work():
            order = self._get_order_or_404(order_id)
            if not actor.is_system and not self._can_access(order, actor):
                raise UnauthorizedError("No puedes cancelar este pedido")
            cancel_reason = reason or ("staff" if self._is_staff(actor) else "customer")
            self._cancel(order, cancel_reason, actor.user_id)
            return order

        order = self._transact(work, label=f"cancelar pedido {order_id}")
        logger.info(f"[Orders] Pedido #{order_id} cancelado por {actor.email}")
        self._publish()
        return to_order_view(order, self.clock())

    def confirm_payment_and_queue(self, order_id: int, actor: ActorContext):
        """Confirma el pago (acción manual del personal) y pasa el pedido a la cola"""
        self.require_staff(actor)

        def work():
            order = self._get_order_or_404(order_id)
            self._check_window_open(order, OrderStatus.PENDING)

            outcome = self.store.update_order_fields(
                order_id,
                {
                    "status": OrderStatus.PENDING.value,
                    "payment_status": PaymentStatus.PAID.value,
                    "expiry_time": None,
                    "awaiting_payment_at": None,
                    "updated_at": self.clock(),
                },
                expected_status=OrderStatus.AWAITING_PAYMENT,
            )
            self._raise_for_outcome(outcome, order_id, OrderStatus.PENDING)
            return order

        order = self._transact(work, label=f"confirmar pago {order_id}")
        logger.info(f"[Orders] ✅ Pago confirmado, pedido #{order_id} en cola")
        self._publish()
        return to_order_view(order, self.clock())

    def complete_order(self, order_id: int, actor: ActorContext):
        self.require_staff(actor)

        def work():
            order = self._get_order_or_404(order_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidTransitionError(order_id, order.status, OrderStatus.COMPLETED.value)

            now = self.clock()
            outcome = self.store.update_order_fields(
                order_id,
                {
                    "status": OrderStatus.COMPLETED.value,
                    "completed_at": now,
                    "updated_at": now,
                },
                expected_status=OrderStatus.PENDING,
            )
            self._raise_for_outcome(outcome, order_id, OrderStatus.COMPLETED)
            return order

        order = self._transact(work, label=f"completar pedido {order_id}")
        logger.info(f"[Orders] ✅ Pedido #{order_id} completado")
        self._publish()
        return to_order_view(order, self.clock())

    def submit_payment_proof(self, order_id: int, proof: Any, actor: ActorContext):
        """
        El cliente adjunta su comprobante de pago.

        Marca paymentStatus = paid pero no mueve el pedido: la confirmación
        sigue siendo del personal.
        """
        if proof is None or proof == "":
            raise ValidationError("Comprobante de pago vacío")

        def work():
            order = self._get_order_or_404(order_id)
            if not self._can_access(order, actor):
                raise UnauthorizedError("No puedes modificar este pedido")
            self._check_window_open(order, OrderStatus.AWAITING_PAYMENT)

            outcome = self.store.update_order_fields(
                order_id,
                {
                    "payment_proof": proof,
                    "payment_status": PaymentStatus.PAID.value,
                    "updated_at": self.clock(),
                },
                expected_status=OrderStatus.AWAITING_PAYMENT,
            )
            self._raise_for_outcome(outcome, order_id, OrderStatus.AWAITING_PAYMENT)
            return order

        order = self._transact(work, label=f"comprobante pedido {order_id}")
        logger.info(f"[Orders] Comprobante recibido para pedido #{order_id}")
        self._publish()
        return to_order_view(order, self.clock())

    def sweep_expired(self) -> int:
        """
        Cancela los pedidos cuya ventana de pago ya venció.

        Un pedido que otra acción ya resolvió se omite; una falla en un
        pedido se registra y el barrido sigue con los demás.
        """
        now = self.clock()
        candidates = self.store.query_orders(
            OrderFilter(statuses=[OrderStatus.AWAITING_PAYMENT], expired_before=now),
            OrderSort(field="expiryTime"),
        )
        order_ids = [order.id for order in candidates]
        if not order_ids:
            return 0

        cancelled = 0
        for order_id in order_ids:
            try:
                self._transact(lambda: self._expire_one(order_id, now), label=f"vencer pedido {order_id}")
                cancelled += 1
            except InvalidTransitionError as e:
                logger.info(f"[Sweeper] Pedido #{order_id} ya resuelto, se omite: {e.message}")
            except OrderError as e:
                logger.warning(f"[Sweeper] ❌ No se pudo vencer pedido #{order_id}: {e.message}")
            except Exception as e:
                logger.exception(f"[Sweeper] ❌ Error inesperado con pedido #{order_id}: {e}")

        if cancelled:
            logger.info(f"[Sweeper] {cancelled} pedido(s) vencido(s) cancelado(s)")
            self._publish()
        return cancelled

    def _expire_one(self, order_id: int, now: datetime) -> Order:
        order = self._get_order_or_404(order_id)
        if order.status != OrderStatus.AWAITING_PAYMENT or order.expiry_time is None or order.expiry_time >= now:
            raise InvalidTransitionError(order_id, order.status, OrderStatus.CANCELLED.value)
        self._cancel(order, EXPIRED_REASON, None, expected_status=OrderStatus.AWAITING_PAYMENT)
        return order

    def _cancel(
        self,
        order: Order,
        reason: str,
        cancelled_by: Optional[int],
        expected_status: Optional[OrderStatus] = None,
    ) -> None:
        if order.is_terminal:
            raise InvalidTransitionError(order.id, order.status, OrderStatus.CANCELLED.value)

        lines = [StockLine(item.menu_id, item.quantity, item.name) for item in order.items]
        now = self.clock()
        outcome = self.store.update_order_fields(
            order.id,
            {
                "status": OrderStatus.CANCELLED.value,
                "cancelled_at": now,
                "expiry_time": None,
                "cancel_reason": reason,
                "cancelled_by": cancelled_by,
                "updated_at": now,
            },
            expected_status=expected_status or OrderStatus(order.status),
        )
        self._raise_for_outcome(outcome, order.id, OrderStatus.CANCELLED)

        # Solo quien ganó la actualización condicional devuelve stock
        self.ledger.restore(lines)

    # ============================================
    # CONSULTAS
    # ============================================

    def get_order(self, order_id: int, actor: ActorContext):
        order = self._get_order_or_404(order_id)
        if not self._can_access(order, actor):
            raise UnauthorizedError("No puedes ver este pedido")
        return to_order_view(order, self.clock())

    def list_customer_orders(self, actor: ActorContext) -> List:
        orders = self.store.query_orders(
            OrderFilter(user_email=actor.email),
            OrderSort(field="createdAt", descending=True),
        )
        now = self.clock()
        return [to_order_view(order, now) for order in orders]

    def list_orders(self, status: str, actor: ActorContext) -> List:
        """Colas del personal: las activas de la más antigua a la más nueva, completadas al revés"""
        self.require_staff(actor)
        try:
            status = OrderStatus(status)
        except ValueError:
            raise ValidationError(f"Estado desconocido: {status}")

        orders = self.store.query_orders(OrderFilter(statuses=[status]), queue_sort(status))
        now = self.clock()
        return [to_order_view(order, now) for order in orders]

    def daily_stats(self, day: date, actor: ActorContext) -> DailyStats:
        """Resumen de pedidos completados en el día (hora de Indonesia)"""
        self.require_staff(actor)

        start = datetime.combine(day, time.min, tzinfo=TZ_WIB)
        end = start + timedelta(days=1)
        orders = self.store.query_orders(
            OrderFilter(statuses=[OrderStatus.COMPLETED], completed_from=start, completed_to=end),
            OrderSort(field="completedAt"),
        )

        total_orders = len(orders)
        total_revenue = sum(order.total_amount for order in orders)
        total_items = sum(item.quantity for order in orders for item in order.items)

        return DailyStats(
            date=day,
            total_orders=total_orders,
            total_revenue=total_revenue,
            total_items=total_items,
            average_order_value=round(total_revenue / total_orders, 2) if total_orders else 0.0,
        )

    # ============================================
    # HELPERS
    # ============================================

    def _transact(self, fn: Callable[[], Any], label: str, attempts: Optional[int] = None):
        """Ejecuta fn + commit; ante cualquier error hace rollback y lo propaga."""

        def unit():
            result = fn()
            self.db.commit()
            return result

        try:
            return run_with_retry(self.db, unit, label=label, attempts=attempts)
        except Exception:
            self.db.rollback()
            raise

    def _publish(self) -> None:
        if self.events is None or not self.events.subscriber_count:
            return
        try:
            self.events.notify()
        except Exception as e:
            logger.exception(f"[OrderEvents] ❌ Falló la notificación de cambios: {e}")

    def _get_order_or_404(self, order_id: int) -> Order:
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Pedido {order_id} no encontrado")
        return order

    def _check_window_open(self, order: Order, target: OrderStatus) -> None:
        if order.status != OrderStatus.AWAITING_PAYMENT:
            raise InvalidTransitionError(order.id, order.status, target.value)
        if order.expiry_time is not None and order.expiry_time < self.clock():
            raise InvalidTransitionError(order.id, order.status, target.value)

    def _raise_for_outcome(self, outcome: UpdateOutcome, order_id: int, target: OrderStatus) -> None:
        if outcome == UpdateOutcome.SUCCESS:
            return
        if outcome == UpdateOutcome.NOT_FOUND:
            raise NotFoundError(f"Pedido {order_id} no encontrado")
        # Otra acción ganó la carrera
        raise InvalidTransitionError(order_id, self.store.get_status(order_id), target.value)

    def _is_staff(self, actor: ActorContext) -> bool:
        if actor.is_system:
            return False
        user = self.db.get(User, actor.user_id, populate_existing=True)
        return bool(user and user.is_active and user.is_staff)

    def require_staff(self, actor: ActorContext) -> None:
        if not self._is_staff(actor):
            logger.warning(f"[Orders] Acción de personal rechazada para {actor.email} (rol declarado: {actor.role_hint})")
            raise UnauthorizedError("Solo el personal puede realizar esta acción")

    def _can_access(self, order: Order, actor: ActorContext) -> bool:
        if actor.is_system:
            return True
        return order.user_email == actor.email or self._is_staff(actor)

    @staticmethod
    def _parse_payment_method(payment_method) -> PaymentMethod:
        try:
            return PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Método de pago inválido: {payment_method}")

    @staticmethod
    def _validate_items(items: Iterable[Any]) -> List[StockLine]:
        """Acepta objetos con menu_id/quantity o dicts con menuId/quantity"""
        requested: List[StockLine] = []
        bad_rows = []
        for index, item in enumerate(items or []):
            if isinstance(item, dict):
                menu_id = item.get("menu_id", item.get("menuId"))
                quantity = item.get("quantity")
            else:
                menu_id = getattr(item, "menu_id", None)
                quantity = getattr(item, "quantity", None)

            if not isinstance(menu_id, int) or isinstance(menu_id, bool):
                bad_rows.append({"row": index, "menuId": menu_id, "error": "menuId inválido"})
            elif not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                bad_rows.append({"row": index, "menuId": menu_id, "error": "cantidad debe ser mayor a 0"})
            else:
                requested.append(StockLine(menu_id, quantity))

        if bad_rows:
            raise ValidationError("Items inválidos", errors=bad_rows)
        if not requested:
            raise ValidationError("El pedido no tiene items")

        # Un mismo item repetido se junta en una sola línea
        merged = {}
        for line in requested:
            if line.menu_id in merged:
                merged[line.menu_id].quantity += line.quantity
            else:
                merged[line.menu_id] = line
        return list(merged.values())
