# app/services/stock_ledger.py
"""
Libro de stock de items del menú

Cada ajuste es un UPDATE atómico contra el valor guardado
(stock = stock + delta, solo si el resultado no queda negativo); nunca se
lee, calcula en Python y se sobreescribe.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.database import utcnow
from app.core.errors import InsufficientStockError, NotFoundError
from app.models.menu_item import MenuItem

logger = logging.getLogger(__name__)


@dataclass
class StockLine:
    menu_id: int
    quantity: int
    name: str = ""


def _merge_lines(lines: Iterable[StockLine]) -> List[StockLine]:
    """Suma cantidades del mismo item manteniendo el orden de aparición."""
    merged: Dict[int, StockLine] = {}
    for line in lines:
        if line.menu_id in merged:
            merged[line.menu_id].quantity += line.quantity
        else:
            merged[line.menu_id] = StockLine(line.menu_id, line.quantity, line.name)
    return list(merged.values())


class StockLedger:
    """Reserva y devuelve stock. No hace commit: lo decide quien llama."""

    def __init__(self, db: Session):
        self.db = db

    def get_stock(self, menu_id: int) -> int:
        stock = self.db.query(MenuItem.stock).filter(MenuItem.id == menu_id).scalar()
        if stock is None:
            raise NotFoundError(f"Item de menú {menu_id} no encontrado")
        return stock

    def adjust_stock(self, menu_id: int, delta: int) -> int:
        """
        Ajuste atómico de un item.

        Returns:
            Stock resultante

        Raises:
            NotFoundError si el item no existe
            InsufficientStockError si el stock quedaría negativo
        """
        stmt = (
            update(MenuItem)
            .where(MenuItem.id == menu_id, MenuItem.stock + delta >= 0)
            .values(stock=MenuItem.stock + delta, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount == 0:
            row = self.db.query(MenuItem.name, MenuItem.stock).filter(MenuItem.id == menu_id).first()
            if row is None:
                raise NotFoundError(f"Item de menú {menu_id} no encontrado")
            raise InsufficientStockError([{
                "menuId": menu_id,
                "name": row.name,
                "requested": -delta,
                "available": row.stock,
            }])

        return self.get_stock(menu_id)

    def find_shortages(self, lines: Iterable[StockLine]) -> List[dict]:
        lines = _merge_lines(lines)
        ids = [line.menu_id for line in lines]
        rows = self.db.query(MenuItem.id, MenuItem.name, MenuItem.stock).filter(MenuItem.id.in_(ids)).all()
        by_id = {row.id: row for row in rows}

        missing = [menu_id for menu_id in ids if menu_id not in by_id]
        if missing:
            raise NotFoundError(
                f"Items de menú no encontrados: {', '.join(str(m) for m in missing)}",
                errors=[{"menuId": m} for m in missing],
            )

        shortages = []
        for line in lines:
            row = by_id[line.menu_id]
            if row.stock < line.quantity:
                shortages.append({
                    "menuId": line.menu_id,
                    "name": row.name,
                    "requested": line.quantity,
                    "available": row.stock,
                })
        return shortages

    def reserve(self, lines: Iterable[StockLine]) -> None:
        """
        Descuenta stock de todo el lote o de nada.

        Primero verifica todos los items; si alguno no alcanza, falla sin
        tocar ninguno. Si un ajuste concurrente gana entre la verificación
        y el descuento, se devuelve lo ya descontado del lote.
        """
        lines = _merge_lines(lines)

        shortages = self.find_shortages(lines)
        if shortages:
            logger.info(f"[Stock] ❌ Reserva rechazada: {shortages}")
            raise InsufficientStockError(shortages)

        applied: List[StockLine] = []
        try:
            for line in lines:
                self.adjust_stock(line.menu_id, -line.quantity)
                applied.append(line)
        except InsufficientStockError:
            for line in applied:
                self.adjust_stock(line.menu_id, line.quantity)
            raise

        logger.debug(f"[Stock] Reservado: {[(l.menu_id, l.quantity) for l in lines]}")

    def restore(self, lines: Iterable[StockLine]) -> None:
        """Devuelve stock sin tope superior. Items borrados del menú se omiten."""
        for line in _merge_lines(lines):
            try:
                self.adjust_stock(line.menu_id, line.quantity)
            except NotFoundError:
                logger.warning(f"[Stock] Item {line.menu_id} ({line.name}) ya no existe, no se devuelve stock")
