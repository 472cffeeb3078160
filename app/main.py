# app/main.py
"""
NeedTea - Pedidos de comidas y bebidas
Main Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.core.database import Base, engine
from app.core.errors import OrderError
from app.api.v1.api import api_router
from app.services.expiry_sweeper import ExpirySweeper
from app.services.order_events import order_events

from app import models  # noqa: F401  registra las tablas en Base.metadata

from dotenv import load_dotenv
load_dotenv()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


# ========================================
# LIFESPAN EVENT
# ========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup y shutdown events"""

    # ===== STARTUP =====
    logger.info("=" * 60)
    logger.info("🚀 NEEDTEA - SERVIDOR INICIADO")
    logger.info("=" * 60)

    Base.metadata.create_all(bind=engine)

    routes_api = []
    for route in app.routes:
        if hasattr(route, 'methods') and hasattr(route, 'path'):
            methods = ', '.join(sorted(route.methods - {'HEAD', 'OPTIONS'}))
            if methods and route.path.startswith('/api/'):
                routes_api.append(f"  {methods:12} {route.path}")

    logger.info("🔌 RUTAS API:\n" + "\n".join(sorted(set(routes_api))))

    sweeper = None
    if settings.EXPIRY_SWEEPER_ENABLED:
        sweeper = ExpirySweeper(events=order_events)
        sweeper.start()
    else:
        logger.info("[Sweeper] Deshabilitado por configuración")

    yield

    # ===== SHUTDOWN =====
    if sweeper is not None:
        await sweeper.stop()
    logger.info("👋 Servidor detenido")


# ========================================
# CREAR APP
# ========================================
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan
)


# ========================================
# MIDDLEWARE - CORS
# ========================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# ERRORES DE PEDIDOS
# ========================================
@app.exception_handler(OrderError)
async def order_error_handler(request: Request, exc: OrderError):
    if exc.status_code >= 500:
        logger.error(f"[API] {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ========================================
# ROUTERS API (prefix /api/v1)
# ========================================
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health():
    """Health check"""
    return {"status": "healthy", "app": "needtea"}
