"""
Menú (solo lectura)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models.menu_item import MenuItem
from app.schemas.menu import MenuItemResponse

router = APIRouter(prefix="/menu")


@router.get("", response_model=List[MenuItemResponse])
def list_menu(
    category: Optional[str] = Query(None, pattern="^(food|drink)$"),
    in_stock: bool = False,
    db: Session = Depends(get_db),
):
    """Items del menú, los más nuevos primero"""
    query = db.query(MenuItem)
    if category:
        query = query.filter(MenuItem.category == category)
    if in_stock:
        query = query.filter(MenuItem.stock > 0)
    return query.order_by(MenuItem.created_at.desc(), MenuItem.id.desc()).all()
