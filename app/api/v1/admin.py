"""
Endpoints del personal: colas, confirmación de pago, pedidos manuales
"""
import asyncio
import json
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from app.api.dependencies import get_actor, get_order_service
from app.models.order import OrderStatus
from app.schemas.order import (
    DailyStats,
    ManualOrderRequest,
    OrderView,
    PlaceOrderResponse,
    SweepResponse,
)
from app.services.order_events import order_events
from app.services.order_service import TZ_WIB, ActorContext, OrderService, queue_sort
from app.services.order_store import OrderFilter

router = APIRouter(prefix="/admin")


# ============================================
# COLAS
# ============================================

@router.get("/orders", response_model=List[OrderView])
def list_orders(
    status_filter: OrderStatus = Query(OrderStatus.PENDING, alias="status"),
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Cola por estado: awaiting_payment, pending, completed o cancelled"""
    return service.list_orders(status_filter, actor)


def offer_latest_snapshot(queue: asyncio.Queue, views) -> None:
    """Cada lista reemplaza a la que el cliente todavía no leyó."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(views)


@router.get("/orders/stream")
async def stream_orders(
    status_filter: OrderStatus = Query(OrderStatus.PENDING, alias="status"),
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Cola en vivo (Server-Sent Events)

    Envía la lista completa al conectarse y de nuevo después de cada
    cambio de pedidos.
    """
    await asyncio.to_thread(service.require_staff, actor)

    async def event_stream():
        # Se suscribe recién cuando el cliente empieza a leer
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        def on_change(views):
            loop.call_soon_threadsafe(offer_latest_snapshot, queue, views)

        unsubscribe = await asyncio.to_thread(
            order_events.subscribe,
            OrderFilter(statuses=[status_filter]),
            queue_sort(status_filter),
            on_change,
        )
        try:
            while True:
                views = await queue.get()
                payload = json.dumps([v.model_dump(mode="json", by_alias=True) for v in views])
                yield f"data: {payload}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


# ============================================
# TRANSICIONES
# ============================================

@router.post("/orders/manual", response_model=PlaceOrderResponse, status_code=status.HTTP_201_CREATED)
def create_manual_order(
    data: ManualOrderRequest,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Pedido cargado por el personal a nombre de un cliente"""
    placed = service.create_manual_order(
        data.customer_name,
        data.items,
        data.payment_method,
        data.notes,
        actor,
    )
    return PlaceOrderResponse(
        order_id=placed.order_id,
        status=placed.status,
        expiry_time=placed.expiry_time,
    )


@router.post("/orders/sweep-expired", response_model=SweepResponse)
def sweep_expired(
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Barrido manual de pedidos vencidos (el automático corre cada minuto)"""
    service.require_staff(actor)
    return SweepResponse(cancelled_count=service.sweep_expired())


@router.post("/orders/{order_id}/confirm-payment", response_model=OrderView)
def confirm_payment(
    order_id: int,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    return service.confirm_payment_and_queue(order_id, actor)


@router.post("/orders/{order_id}/complete", response_model=OrderView)
def complete_order(
    order_id: int,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    return service.complete_order(order_id, actor)


@router.post("/orders/{order_id}/cancel", response_model=OrderView)
def cancel_order(
    order_id: int,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    service.require_staff(actor)
    return service.cancel_order(order_id, actor, reason="staff")


# ============================================
# ESTADÍSTICAS
# ============================================

@router.get("/stats/daily", response_model=DailyStats)
def daily_stats(
    day: Optional[date] = Query(None, alias="date"),
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Resumen de pedidos completados del día (por defecto hoy, hora WIB)"""
    return service.daily_stats(day or datetime.now(TZ_WIB).date(), actor)
