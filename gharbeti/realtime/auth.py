"""
Autenticación de conexiones en tiempo real.
"""
from typing import Optional, Protocol
from uuid import UUID
from fastapi import WebSocket
from jose import JWTError

from gharbeti.core.exceptions import TransportAuthException
from gharbeti.core.security import decode_token, get_subject


class CapabilityVerifier(Protocol):
    """Resuelve un token de capacidad a la identidad verificada del usuario."""

    def verify(self, token: Optional[str]) -> UUID:
        """
        Raises:
            TransportAuthException: Si el token falta o no es válido
        """
        ...


class JWTCapabilityVerifier:
    """Verificador de tokens JWT de acceso emitidos por el proveedor de identidad."""

    def verify(self, token: Optional[str]) -> UUID:
        if not token:
            raise TransportAuthException("Token requerido")

        try:
            payload = decode_token(token)
        except JWTError as e:
            raise TransportAuthException(str(e)) from e

        user_id = get_subject(payload)
        if user_id is None:
            raise TransportAuthException("Token sin usuario o de tipo incorrecto")

        try:
            return UUID(str(user_id))
        except ValueError as e:
            raise TransportAuthException("Identificador de usuario inválido") from e


def extract_token(websocket: WebSocket) -> Optional[str]:
    """
    Obtener el token del handshake: ?token=... o cabecera Authorization: Bearer.

    Args:
        websocket: Conexión entrante

    Returns:
        Token o None
    """
    token = websocket.query_params.get("token")
    if token:
        return token

    authorization = websocket.headers.get("authorization")
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip()

    return None
