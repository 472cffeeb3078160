# app/services/order_events.py
"""
Bus de cambios de pedidos

Cada suscripción guarda un filtro y un orden; después de cada transición
confirmada se vuelve a consultar y se entrega la lista completa al
callback (como un snapshot de las colas en vivo).
"""
import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List

from app.core.database import SessionLocal, utcnow
from app.schemas.order import to_order_view
from app.services.order_store import OrderStore

logger = logging.getLogger(__name__)


@dataclass
class _Subscription:
    order_filter: object
    sort: object
    callback: Callable[[List], None]


class OrderEventBus:
    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory
        self._subscriptions: Dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, order_filter, sort, callback) -> Callable[[], None]:
        sub_id = next(self._ids)
        subscription = _Subscription(order_filter, sort, callback)
        with self._lock:
            self._subscriptions[sub_id] = subscription

        # Snapshot inicial, igual que al abrir la cola
        self._deliver(subscription)

        def unsubscribe():
            with self._lock:
                self._subscriptions.pop(sub_id, None)

        return unsubscribe

    def notify(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            self._deliver(subscription)

    def _deliver(self, subscription: _Subscription) -> None:
        try:
            db = self.session_factory()
            try:
                orders = OrderStore(db).query_orders(subscription.order_filter, subscription.sort)
                now = utcnow()
                views = [to_order_view(order, now) for order in orders]
            finally:
                db.close()
        except Exception as e:
            # El cambio ya está confirmado; la próxima notificación reenvía la lista
            logger.exception(f"[OrderEvents] ❌ No se pudo consultar la cola: {e}")
            return

        try:
            subscription.callback(views)
        except Exception as e:
            logger.error(f"[OrderEvents] Error en suscriptor: {e}")


order_events = OrderEventBus()
