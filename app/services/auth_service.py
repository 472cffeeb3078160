# app/services/auth_service.py
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import utcnow
from app.core.security import create_access_token, decode_token, verify_password
from app.models.user import User

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def _active_user(self, **criteria) -> Optional[User]:
        return self.db.query(User).filter_by(is_active=True, **criteria).first()

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        user = self._active_user(email=email)
        if user is None or not verify_password(password, user.password_hash):
            logger.info(f"[AuthService] ❌ Login fallido para {email}")
            return None

        user.last_login = utcnow()
        self.db.commit()
        logger.info(f"[AuthService] ✅ Login {email} ({user.role})")
        return user

    def create_access_token_for_user(self, user: User) -> str:
        # 'role' viaja solo como pista para la UI
        return create_access_token(
            claims={"sub": str(user.id), "email": user.email, "role": user.role},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    def get_current_user(self, token: str) -> Optional[User]:
        """Usuario activo dueño del token, o None"""
        payload = decode_token(token)
        if not payload:
            logger.info("[AuthService] ❌ Token inválido o vencido")
            return None

        try:
            user_id = int(payload.get("sub"))
        except (ValueError, TypeError):
            logger.info(f"[AuthService] ❌ 'sub' inválido: {payload.get('sub')}")
            return None

        user = self._active_user(id=user_id)
        if user is None:
            logger.info(f"[AuthService] ❌ Usuario ID {user_id} no existe o está inactivo")
        return user
