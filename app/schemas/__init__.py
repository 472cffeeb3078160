from .order import (
    PlaceOrderRequest,
    ManualOrderRequest,
    PaymentProofRequest,
    PlaceOrderResponse,
    SweepResponse,
    OrderView,
    to_order_view,
    DailyStats,
)
from .menu import MenuItemResponse
from .user import LoginRequest, TokenResponse
