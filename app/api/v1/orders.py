"""
Endpoints de pedidos para clientes
"""
from typing import List

from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_actor, get_order_service
from app.schemas.order import (
    OrderView,
    PaymentProofRequest,
    PlaceOrderRequest,
    PlaceOrderResponse,
)
from app.services.order_service import ActorContext, CustomerIdentity, OrderService

router = APIRouter(prefix="/orders")


@router.post("", response_model=PlaceOrderResponse, status_code=status.HTTP_201_CREATED)
def place_order(
    data: PlaceOrderRequest,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """
    Checkout de autoservicio

    Efectivo entra directo a la cola; los demás métodos quedan esperando
    pago con una ventana de 15 minutos.
    """
    placed = service.place_order(
        CustomerIdentity(email=actor.email, name=actor.name),
        data.items,
        data.payment_method,
        notes=data.notes,
    )
    return PlaceOrderResponse(
        order_id=placed.order_id,
        status=placed.status,
        expiry_time=placed.expiry_time,
    )


@router.get("/mine", response_model=List[OrderView])
def my_orders(
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Pedidos del cliente, el más nuevo primero"""
    return service.list_customer_orders(actor)


@router.get("/{order_id}", response_model=OrderView)
def get_order(
    order_id: int,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Estado del pedido, con segundos restantes si espera pago"""
    return service.get_order(order_id, actor)


@router.post("/{order_id}/cancel", response_model=OrderView)
def cancel_order(
    order_id: int,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    return service.cancel_order(order_id, actor)


@router.post("/{order_id}/payment-proof", response_model=OrderView)
def submit_payment_proof(
    order_id: int,
    data: PaymentProofRequest,
    actor: ActorContext = Depends(get_actor),
    service: OrderService = Depends(get_order_service),
):
    """Adjuntar comprobante de pago (el personal confirma después)"""
    return service.submit_payment_proof(order_id, data.proof, actor)
