"""
Schemas para conversaciones y tratos.
"""
from pydantic import BaseModel, computed_field
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from gharbeti.models.conversation import DealStatus
from gharbeti.models.listing import ListingStatus
from gharbeti.schemas.message import LastMessage, MessageResponse


class ConversationCreate(BaseModel):
    """Schema para iniciar (o recuperar) una conversación sobre un anuncio."""

    listing_id: UUID


class DealRespond(BaseModel):
    """Schema para responder a una propuesta de trato."""

    accept: bool


class ListingSummary(BaseModel):
    """Información resumida del anuncio de la conversación."""

    id: UUID
    owner_id: UUID
    title: str
    price: int
    currency: str
    image_url: Optional[str] = None
    status: ListingStatus

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    """Schema de respuesta de conversación."""

    id: UUID
    listing_id: UUID
    seller_id: UUID
    buyer_id: UUID
    deal_status: DealStatus
    is_active: bool
    last_message: Optional[LastMessage] = None
    created_at: datetime
    updated_at: datetime

    # Info adicional
    listing: Optional[ListingSummary] = None
    other_user_id: Optional[UUID] = None
    unread_count: int = 0

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def participants(self) -> List[UUID]:
        return [self.seller_id, self.buyer_id]


class ConversationDetailResponse(ConversationResponse):
    """Schema de respuesta de conversación con su historial de mensajes."""

    messages: List[MessageResponse] = []


class UnreadCountResponse(BaseModel):
    """Total de mensajes no leídos del usuario."""

    unread_count: int
