"""
Protocolo de eventos del gateway en tiempo real.

Cada frame es un objeto JSON {"event": <nombre>, "data": {...}}.
"""
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class ClientEvent(str, Enum):
    """Eventos cliente -> servidor."""
    JOIN_CHAT = "join_chat"
    LEAVE_CHAT = "leave_chat"
    TYPING = "typing"
    STOP_TYPING = "stop_typing"
    SEND_MESSAGE = "send_message"
    MARK_READ = "mark_read"


class ServerEvent(str, Enum):
    """Eventos servidor -> cliente."""
    NEW_MESSAGE = "new_message"
    NOTIFICATION = "notification"
    TYPING = "typing"
    STOP_TYPING = "stop_typing"
    MESSAGES_READ = "messages_read"
    JOINED_CHAT = "joined_chat"
    LEFT_CHAT = "left_chat"
    ERROR = "error"


class InboundFrame(BaseModel):
    """Frame recibido de un cliente."""

    event: ClientEvent
    data: Dict[str, Any] = {}


class ChatRef(BaseModel):
    """Payload con la conversación destino."""

    conversation_id: UUID


class SendMessagePayload(ChatRef):
    """Payload de send_message."""

    text: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=500)


def make_frame(event: ServerEvent, data: Dict[str, Any]) -> Dict[str, Any]:
    """Construir un frame de salida."""
    return {"event": event.value, "data": data}


def error_frame(message: str, code: str, event: Optional[ClientEvent] = None) -> Dict[str, Any]:
    """Frame de error dirigido solo a la conexión que originó el evento."""
    data = {"message": message, "code": code}
    if event is not None:
        data["event"] = event.value
    return make_frame(ServerEvent.ERROR, data)


def user_room(user_id: UUID) -> str:
    return f"user:{user_id}"


def conversation_room(conversation_id: UUID) -> str:
    return f"conversation:{conversation_id}"
