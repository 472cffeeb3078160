"""
Modelo MenuItem - catálogo de comidas y bebidas
"""
from sqlalchemy import Column, Integer, String, Text, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base, UTCDateTime


MENU_CATEGORIES = ("food", "drink")


class MenuItem(Base):
    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_menu_items_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_menu_items_price_non_negative"),
        CheckConstraint("category IN ('food', 'drink')", name="ck_menu_items_category"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Información básica
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, default="food")  # 'food', 'drink'
    image = Column(String(500), nullable=True)

    # Precio en unidades enteras de moneda (Rp)
    price = Column(Integer, nullable=False)

    # Stock: solo lo modifica StockLedger fuera del catálogo
    stock = Column(Integer, nullable=False, default=0)

    # Timestamps
    created_at = Column("createdAt", UTCDateTime, server_default=func.now())
    updated_at = Column("updatedAt", UTCDateTime, onupdate=func.now())

    def __repr__(self):
        return f"<MenuItem #{self.id} {self.name} stock:{self.stock}>"
