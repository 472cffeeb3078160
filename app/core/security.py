# app/core/security.py
"""
Passwords y tokens de acceso

El token solo identifica al usuario ('sub'); el rol que lleva es una
pista para la UI y nunca se usa para autorizar acciones del personal.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Firma un token con 'sub', 'iat' y 'exp' además de los claims dados."""
    if "sub" not in claims:
        raise ValueError("El token necesita 'sub'")

    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {**claims, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Payload del token, o None si la firma no valida o ya venció."""
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
