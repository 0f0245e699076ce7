"""
Dependencias comunes de FastAPI.
"""
from typing import Generator, Optional
from uuid import UUID
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from gharbeti.db.session import SessionLocal
from gharbeti.core.exceptions import UnauthorizedException
from gharbeti.core.security import decode_token, get_subject
from gharbeti.services.events import ChatEventPublisher, NullPublisher

security = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    """
    Dependencia que proporciona una sesión de base de datos.

    Yields:
        Session: Sesión de SQLAlchemy
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> UUID:
    """
    Obtener el ID del usuario actual desde el JWT.

    Los usuarios son identidades opacas emitidas por el proveedor de
    identidad; el claim 'sub' es el ID verificado.

    Args:
        credentials: Credenciales HTTP Bearer

    Returns:
        ID del usuario

    Raises:
        UnauthorizedException: Si falta el token o es inválido
    """
    if credentials is None:
        raise UnauthorizedException("Se requiere un token de acceso")

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise UnauthorizedException("No se pudieron validar las credenciales")

    user_id = get_subject(payload)
    if user_id is None:
        raise UnauthorizedException("No se pudieron validar las credenciales")

    try:
        return UUID(str(user_id))
    except ValueError:
        raise UnauthorizedException("No se pudieron validar las credenciales")


def get_event_publisher(request: Request) -> ChatEventPublisher:
    """
    Publicador de eventos del chat (el gateway en tiempo real de la app).

    Args:
        request: Request actual

    Returns:
        Gateway registrado en app.state, o NullPublisher si no hay
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        return NullPublisher()
    return gateway
