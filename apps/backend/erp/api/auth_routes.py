"""
===============================================================================
TARJETA CRC — erp/api/auth_routes.py (Login / Logout)
===============================================================================

Responsabilidades:
  - Exponer login/logout con JWT.
  - Gestionar cookie httpOnly de forma consistente.
  - Resolver el Principal de cada request (Bearer o cookie) para el resto
    de la API.

Colaboradores:
  - identity.auth_users: authenticate_user, create_access_token, extract_access_token
  - identity.session.resolve_principal
  - container.get_store
===============================================================================
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import BaseModel, Field, field_validator

from ..container import get_store
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES, unauthenticated
from ..crosscutting.logger import logger
from ..domain.repositories import Store
from ..identity.auth_users import DEFAULT_ACCESS_TOKEN_COOKIE as ACCESS_TOKEN_COOKIE
from ..identity.auth_users import (
    authenticate_user,
    create_access_token,
    extract_access_token,
    get_auth_settings,
)
from ..identity.principal import Principal
from ..identity.session import resolve_principal

router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)


# -----------------------------------------------------------------------------
# Modelos HTTP (DTOs)
# -----------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=512)

    @field_validator("email")
    @classmethod
    def normalizar_email(cls, v: str) -> str:
        return v.strip().lower()


class SessionUser(BaseModel):
    id: UUID
    email: str
    name: str
    role_id: UUID | None
    is_active: bool


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: SessionUser


# -----------------------------------------------------------------------------
# Dependencias
# -----------------------------------------------------------------------------


def get_principal(
    request: Request,
    authorization: str | None = Header(default=None),
    store: Store = Depends(get_store),
) -> Principal | None:
    """Principal del request o None (la exigencia de sesión es de los guards)."""
    token = extract_access_token(request, authorization)
    return resolve_principal(token, store)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _set_auth_cookie(response: Response, token: str, expires_in: int) -> None:
    settings = get_auth_settings()
    response.set_cookie(
        key=settings.jwt_cookie_name or ACCESS_TOKEN_COOKIE,
        value=token,
        httponly=True,
        secure=settings.jwt_cookie_secure,
        samesite="lax",
        max_age=expires_in,
        path="/",
    )


def _clear_auth_cookie(response: Response) -> None:
    settings = get_auth_settings()
    response.delete_cookie(
        key=settings.jwt_cookie_name or ACCESS_TOKEN_COOKIE,
        path="/",
        samesite="lax",
        secure=settings.jwt_cookie_secure,
    )


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse, tags=["auth"])
def login(req: LoginRequest, response: Response, store: Store = Depends(get_store)):
    """
    Inicia sesión y devuelve JWT.

    - También setea cookie httpOnly con el mismo token.
    """
    user = authenticate_user(store, req.email, req.password)
    if user is None:
        raise unauthenticated("Invalid email or password")

    token, expires_in = create_access_token(user)
    _set_auth_cookie(response, token, expires_in)
    logger.info("User logged in", extra={"user_id": str(user.id)})

    return LoginResponse(
        access_token=token,
        expires_in=expires_in,
        user=SessionUser(
            id=user.id,
            email=user.email,
            name=user.name,
            role_id=user.role_id,
            is_active=user.is_active,
        ),
    )


@router.post("/auth/logout", tags=["auth"])
def logout(response: Response):
    """
    Cierra sesión.

    - Siempre borra la cookie (si estaba presente).
    - No requiere autenticación: es idempotente.
    """
    _clear_auth_cookie(response)
    return {"ok": True}
