"""
Schemas para mensajes.
"""
from pydantic import BaseModel, Field, model_validator
from uuid import UUID
from datetime import datetime
from typing import Optional

from gharbeti.models.message import MessageKind


class MessageCreate(BaseModel):
    """Schema para crear mensaje. Se requiere texto o imagen."""

    text: Optional[str] = Field(None, max_length=2000)
    image_url: Optional[str] = Field(None, max_length=500)

    model_config = {"from_attributes": True, "str_strip_whitespace": True}

    @model_validator(mode="after")
    def require_content(self) -> "MessageCreate":
        if not self.text and not self.image_url:
            raise ValueError("El mensaje debe tener texto o imagen")
        return self


class MessageResponse(BaseModel):
    """Schema de respuesta de mensaje."""

    id: UUID
    conversation_id: UUID
    sender_id: UUID
    text: Optional[str] = None
    image_url: Optional[str] = None
    kind: MessageKind
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class LastMessage(BaseModel):
    """Resumen del último mensaje de una conversación."""

    id: UUID
    sender_id: UUID
    text: Optional[str] = None
    image_url: Optional[str] = None
    kind: MessageKind
    created_at: Optional[datetime] = None
