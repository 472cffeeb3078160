# app/services/expiry_sweeper.py
"""
Barrido periódico de pedidos con ventana de pago vencida

El vencimiento se guarda como dato (expiryTime), no como un timer vivo:
cada pasada compara contra la hora del servidor y cancela lo vencido.
"""
import asyncio
import logging
from typing import Callable, Optional

from app.core.config import settings
from app.core.database import SessionLocal, utcnow
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        session_factory=SessionLocal,
        interval_seconds: Optional[float] = None,
        clock: Callable = utcnow,
        events=None,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
        self.clock = clock
        self.events = events
        self._stop = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> int:
        """Una pasada completa; devuelve cuántos pedidos canceló."""
        db = self.session_factory()
        try:
            return OrderService(db, clock=self.clock, events=self.events).sweep_expired()
        finally:
            db.close()

    async def run_forever(self) -> None:
        logger.info(f"[Sweeper] Iniciado, intervalo {self.interval_seconds}s")
        while not self._stop.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                # La pasada siguiente vuelve a intentar
                logger.exception(f"[Sweeper] ❌ Error en la pasada: {e}")

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("[Sweeper] Detenido")

    def start(self) -> asyncio.Task:
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
