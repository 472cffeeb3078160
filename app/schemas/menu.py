# app/schemas/menu.py
from datetime import datetime
from typing import Optional

from app.schemas.order import CamelModel


class MenuItemResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    price: int
    category: str
    image: Optional[str] = None
    stock: int
    created_at: Optional[datetime] = None
