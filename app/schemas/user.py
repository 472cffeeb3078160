# app/schemas/user.py
from pydantic import BaseModel, validator


class LoginRequest(BaseModel):
    email: str
    password: str

    @validator('email')
    def email_normalized(cls, v):
        if not v or "@" not in v:
            raise ValueError('Email inválido')
        return v.strip().lower()


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    name: str
