"""
Configuración de la aplicación
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # App
    PROJECT_NAME: str = "NeedTea"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    APP_NAME: str = "NEEDTEA"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./needtea.db"

    # Security
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 días

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Ventanas de pago (minutos)
    SELF_SERVICE_PAYMENT_WINDOW_MINUTES: int = 15
    MANUAL_PAYMENT_WINDOW_MINUTES: int = 30

    # Barrido de pedidos vencidos
    EXPIRY_SWEEP_INTERVAL_SECONDS: int = 60
    EXPIRY_SWEEPER_ENABLED: bool = True

    # Reintentos ante fallas de la base de datos
    STORE_RETRY_ATTEMPTS: int = 3
    STORE_RETRY_BACKOFF_SECONDS: float = 0.2

    # Identidad centinela de pedidos manuales
    MANUAL_ORDER_EMAIL: str = "manual@needtea.local"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
