from fastapi import APIRouter
from app.api.v1 import (
    auth,
    menu,
    orders,
    admin,
)

api_router = APIRouter()

api_router.include_router(auth.router, tags=["auth"])
api_router.include_router(menu.router, tags=["menu"])
api_router.include_router(orders.router, tags=["orders"])
api_router.include_router(admin.router, tags=["admin"])
