"""
Endpoints de conversaciones (chat).
"""
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List

from gharbeti.core.deps import get_db, get_current_user_id, get_event_publisher
from gharbeti.models.conversation import Conversation
from gharbeti.schemas.common import DataResponse, MessageResponse
from gharbeti.schemas.conversation import (
    ConversationCreate,
    ConversationDetailResponse,
    ConversationResponse,
    UnreadCountResponse,
)
from gharbeti.schemas.message import MessageCreate, MessageResponse as ChatMessageResponse
from gharbeti.services import read_tracking
from gharbeti.services.chat_service import ChatService
from gharbeti.services.events import ChatEventPublisher

router = APIRouter()


def build_conversation_response(
    conversation: Conversation,
    user_id: UUID,
    unread_count: int,
    response_class=ConversationResponse,
):
    """Construir la respuesta de una conversación desde la perspectiva del usuario."""
    response = response_class.model_validate(conversation)
    response.other_user_id = conversation.get_other_user_id(user_id)
    response.unread_count = unread_count
    return response


@router.post("", response_model=DataResponse[ConversationResponse])
def start_conversation(
    conversation_in: ConversationCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
):
    """
    Iniciar una conversación sobre un anuncio.

    Si ya existe una conversación entre el usuario y el dueño del anuncio,
    retorna la existente (200); si se crea, responde 201.
    """
    service = ChatService(db)
    conversation, created = service.get_or_create(conversation_in.listing_id, current_user_id)

    if created:
        response.status_code = status.HTTP_201_CREATED

    return DataResponse(
        message="Conversación creada" if created else "Conversación existente",
        data=build_conversation_response(
            conversation, current_user_id, read_tracking.unread_count(conversation, current_user_id)
        ),
    )


@router.get("", response_model=DataResponse[List[ConversationResponse]])
def get_my_conversations(
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
):
    """
    Obtener conversaciones activas del usuario actual.

    Ordenadas por actividad más reciente, con la cantidad de mensajes no leídos.
    """
    service = ChatService(db)
    conversations = [
        build_conversation_response(conversation, current_user_id, unread)
        for conversation, unread in service.list_for_user(current_user_id)
    ]
    return DataResponse(data=conversations)


@router.get("/unread/count", response_model=DataResponse[UnreadCountResponse])
def get_unread_count(
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
):
    """
    Obtener el total de mensajes no leídos del usuario actual.
    """
    total = ChatService(db).get_unread_total(current_user_id)
    return DataResponse(data=UnreadCountResponse(unread_count=total))


@router.get("/{conversation_id}", response_model=DataResponse[ConversationDetailResponse])
def get_conversation(
    conversation_id: UUID,
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
    publisher: ChatEventPublisher = Depends(get_event_publisher),
):
    """
    Obtener detalle de una conversación con su historial.

    El usuario debe ser participante. Los mensajes recibidos se marcan como leídos.
    """
    service = ChatService(db, publisher=publisher)
    conversation = service.get(conversation_id, current_user_id)
    return DataResponse(
        data=build_conversation_response(
            conversation,
            current_user_id,
            read_tracking.unread_count(conversation, current_user_id),
            response_class=ConversationDetailResponse,
        )
    )


@router.post(
    "/{conversation_id}/messages",
    response_model=DataResponse[ChatMessageResponse],
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: UUID,
    message_in: MessageCreate,
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
    publisher: ChatEventPublisher = Depends(get_event_publisher),
):
    """
    Enviar un mensaje en una conversación.

    Se notifica en tiempo real a los participantes conectados.
    """
    service = ChatService(db, publisher=publisher)
    message = service.append_message(
        conversation_id,
        current_user_id,
        text=message_in.text,
        image_url=message_in.image_url,
    )
    return DataResponse(message="Mensaje enviado", data=ChatMessageResponse.model_validate(message))


@router.delete("/{conversation_id}", response_model=MessageResponse)
def delete_conversation(
    conversation_id: UUID,
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
):
    """
    Desactivar una conversación (soft delete).

    El historial se conserva; un nuevo mensaje la reactiva.
    """
    ChatService(db).set_inactive(conversation_id, current_user_id)
    return MessageResponse(message="Conversación eliminada")
