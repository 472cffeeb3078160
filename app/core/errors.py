"""
Errores del ciclo de vida de pedidos

Cada error lleva un código estable y el status HTTP con el que se
responde; la API los convierte en JSON en un solo handler.
"""
from typing import Any, Dict, List, Optional


class OrderError(Exception):
    code = "order_error"
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "detail": self.message,
            "errors": self.errors,
        }


class ValidationError(OrderError):
    """Entrada mal formada; se rechaza antes de tocar la base."""
    code = "validation_error"
    status_code = 400


class InsufficientStockError(OrderError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, shortages: List[Dict[str, Any]]):
        names = ", ".join(
            f"{s['name']} (disponible: {s['available']})" for s in shortages
        )
        super().__init__(f"Stock insuficiente: {names}", errors=shortages)
        self.shortages = shortages


class InvalidTransitionError(OrderError):
    """Transición no permitida desde el estado actual (conflicto)."""
    code = "invalid_transition"
    status_code = 409

    def __init__(self, order_id: int, current_status: Optional[str], target_status: str):
        super().__init__(
            f"Pedido {order_id}: no se puede pasar de '{current_status}' a '{target_status}'",
            errors=[{
                "orderId": order_id,
                "currentStatus": current_status,
                "targetStatus": target_status,
            }],
        )
        self.order_id = order_id
        self.current_status = current_status
        self.target_status = target_status


class NotFoundError(OrderError):
    code = "not_found"
    status_code = 404


class UnauthorizedError(OrderError):
    code = "unauthorized"
    status_code = 403


class TransientStoreError(OrderError):
    code = "transient_store_error"
    status_code = 503

    def __init__(self, message: str = "Error temporal de la base de datos, intenta de nuevo"):
        super().__init__(message)
