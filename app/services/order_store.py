# app/services/order_store.py
"""
Acceso a pedidos (SQLAlchemy)

Todo cambio de estado pasa por update_order_fields con el estado esperado:
UPDATE ... WHERE id = :id AND status = :esperado. La cantidad de filas
afectadas decide quién ganó cuando dos acciones compiten por el mismo
pedido.
"""
import enum
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import TransientStoreError, ValidationError
from app.models.order import Order, OrderStatus

logger = logging.getLogger(__name__)

TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError)


def run_with_retry(
    db: Session,
    fn: Callable[[], Any],
    label: str,
    attempts: Optional[int] = None,
    backoff: Optional[float] = None,
):
    """
    Ejecuta fn reintentando ante fallas transitorias de la base.

    Entre intentos hace rollback; fn debe volver a leer el estado y usar la
    actualización condicional para que un reintento no se aplique dos veces.
    """
    attempts = attempts or settings.STORE_RETRY_ATTEMPTS
    backoff = settings.STORE_RETRY_BACKOFF_SECONDS if backoff is None else backoff

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except TRANSIENT_DB_ERRORS as e:
            db.rollback()
            logger.warning(f"[OrderStore] Falla transitoria en {label} (intento {attempt}/{attempts}): {e}")
            if attempt == attempts:
                raise TransientStoreError() from e
            time.sleep(backoff * attempt)


class UpdateOutcome(str, enum.Enum):
    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


@dataclass
class OrderFilter:
    statuses: Optional[Sequence[OrderStatus]] = None
    user_email: Optional[str] = None
    expired_before: Optional[datetime] = None
    completed_from: Optional[datetime] = None
    completed_to: Optional[datetime] = None


@dataclass
class OrderSort:
    field: str = "createdAt"
    descending: bool = False


SORT_COLUMNS = {
    "createdAt": Order.created_at,
    "completedAt": Order.completed_at,
    "expiryTime": Order.expiry_time,
}


class OrderStore:
    def __init__(self, db: Session, events=None):
        self.db = db
        self.events = events

    def create_order(self, order: Order) -> int:
        """Inserta el pedido (sin commit). Falla si viola una restricción."""
        self.db.add(order)
        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            raise ValidationError(f"Pedido inválido: {e.orig}") from e
        return order.id

    def get_order(self, order_id: int) -> Optional[Order]:
        return run_with_retry(
            self.db,
            lambda: self.db.get(Order, order_id),
            label=f"get_order {order_id}",
        )

    def get_status(self, order_id: int) -> Optional[str]:
        """Lee el estado directo de la base, sin pasar por el identity map."""
        return self.db.query(Order.status).filter(Order.id == order_id).scalar()

    def update_order_fields(
        self,
        order_id: int,
        fields: Dict[str, Any],
        expected_status: Optional[OrderStatus] = None,
    ) -> UpdateOutcome:
        """
        Actualización condicional (sin commit).

        Args:
            order_id: Pedido a modificar
            fields: Atributos del modelo Order a escribir
            expected_status: Si se indica, solo se escribe si el estado
                actual en la base coincide

        Returns:
            SUCCESS, CONFLICT (el estado ya cambió) o NOT_FOUND
        """
        stmt = update(Order).where(Order.id == order_id)
        if expected_status is not None:
            stmt = stmt.where(Order.status == OrderStatus(expected_status).value)
        stmt = stmt.values(**fields).execution_options(synchronize_session=False)

        result = self.db.execute(stmt)
        if result.rowcount == 1:
            # El objeto en memoria quedó viejo
            order = self.db.identity_map.get(self.db.identity_key(Order, order_id))
            if order is not None:
                self.db.expire(order)
            return UpdateOutcome.SUCCESS

        if self.get_status(order_id) is None:
            return UpdateOutcome.NOT_FOUND
        return UpdateOutcome.CONFLICT

    def query_orders(
        self,
        order_filter: Optional[OrderFilter] = None,
        sort: Optional[OrderSort] = None,
    ) -> List[Order]:
        order_filter = order_filter or OrderFilter()
        sort = sort or OrderSort()

        def run():
            query = self.db.query(Order)
            if order_filter.statuses:
                query = query.filter(Order.status.in_([OrderStatus(s).value for s in order_filter.statuses]))
            if order_filter.user_email:
                query = query.filter(Order.user_email == order_filter.user_email)
            if order_filter.expired_before is not None:
                query = query.filter(
                    Order.expiry_time.isnot(None),
                    Order.expiry_time < order_filter.expired_before,
                )
            if order_filter.completed_from is not None:
                query = query.filter(Order.completed_at >= order_filter.completed_from)
            if order_filter.completed_to is not None:
                query = query.filter(Order.completed_at < order_filter.completed_to)

            column = SORT_COLUMNS.get(sort.field)
            if column is None:
                raise ValidationError(f"Orden no soportado: {sort.field}")
            query = query.order_by(column.desc() if sort.descending else column.asc(), Order.id.asc())
            return query.all()

        return run_with_retry(self.db, run, label="query_orders")

    def subscribe(self, order_filter: OrderFilter, sort: OrderSort, callback) -> Callable[[], None]:
        """Suscripción a cambios; devuelve la función para desuscribirse."""
        if self.events is None:
            raise RuntimeError("OrderStore sin bus de eventos")
        return self.events.subscribe(order_filter, sort, callback)
