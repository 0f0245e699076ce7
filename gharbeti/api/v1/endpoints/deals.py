"""
Endpoints de negociación de tratos sobre una conversación.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from gharbeti.api.v1.endpoints.conversations import build_conversation_response
from gharbeti.core.deps import get_db, get_current_user_id, get_event_publisher
from gharbeti.schemas.common import DataResponse
from gharbeti.schemas.conversation import ConversationResponse, DealRespond
from gharbeti.services import read_tracking
from gharbeti.services.deal_service import DealService
from gharbeti.services.events import ChatEventPublisher

router = APIRouter()


@router.post("/{conversation_id}/deal/propose", response_model=DataResponse[ConversationResponse])
def propose_deal(
    conversation_id: UUID,
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
    publisher: ChatEventPublisher = Depends(get_event_publisher),
):
    """
    Proponer un trato al dueño del anuncio.

    Solo el interesado puede proponer. El anuncio queda en estado 'pending'.
    """
    conversation = DealService(db, publisher=publisher).propose(conversation_id, current_user_id)
    return DataResponse(
        message="Trato propuesto",
        data=build_conversation_response(
            conversation, current_user_id, read_tracking.unread_count(conversation, current_user_id)
        ),
    )


@router.post("/{conversation_id}/deal/respond", response_model=DataResponse[ConversationResponse])
def respond_deal(
    conversation_id: UUID,
    deal_in: DealRespond,
    db: Session = Depends(get_db),
    current_user_id: UUID = Depends(get_current_user_id),
    publisher: ChatEventPublisher = Depends(get_event_publisher),
):
    """
    Aceptar o rechazar el trato pendiente.

    Solo el dueño del anuncio puede responder. Aceptar marca el anuncio como
    'dealed'; rechazar lo devuelve a 'active'.
    """
    conversation = DealService(db, publisher=publisher).respond(
        conversation_id, current_user_id, deal_in.accept
    )
    return DataResponse(
        message="Trato aceptado" if deal_in.accept else "Trato rechazado",
        data=build_conversation_response(
            conversation, current_user_id, read_tracking.unread_count(conversation, current_user_id)
        ),
    )
