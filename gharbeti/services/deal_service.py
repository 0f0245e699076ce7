"""
Servicio de tratos: máquina de estados de la negociación de una conversación.

    none ──propose──> pending ──respond(accept)──> accepted (final)
                         └────respond(reject)──> rejected ──propose──> pending

Cada transición toca dos almacenes: la conversación (estado + mensaje de
sistema) y el anuncio (estado). Se aplica como una saga:

1. Todas las validaciones antes de escribir.
2. Se prepara el cambio de la conversación y se hace flush (control de versión).
3. Se actualiza el anuncio solo si sigue en el estado esperado, con reintentos
   si el almacén falla de forma transitoria. Un lock por anuncio serializa
   las transiciones de todas sus conversaciones en este proceso.
4. Commit. Si el anuncio no pudo actualizarse, la conversación se revierte.
   Si el commit falla tras actualizar un almacén de anuncios externo, el
   anuncio se restaura a su estado anterior.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import UUID
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gharbeti.config import settings
from gharbeti.core.exceptions import (
    ConflictException,
    DealSyncException,
    ForbiddenException,
    InvalidOperationException,
    NotFoundException,
)
from gharbeti.core.locks import conversation_locks, listing_locks
from gharbeti.crud.message import message as crud_message
from gharbeti.db.base import utcnow
from gharbeti.models.conversation import Conversation, DealStatus
from gharbeti.models.listing import ListingStatus
from gharbeti.models.message import MessageKind
from gharbeti.services.chat_service import load_conversation_for, publish_message
from gharbeti.services.events import ChatEventPublisher, NullPublisher
from gharbeti.services.listing_store import (
    ListingStatusConflict,
    ListingStore,
    ListingStoreUnavailable,
    SqlListingStore,
)

logger = logging.getLogger(__name__)


# Textos de los mensajes de sistema del trato
DEAL_MESSAGES = {
    MessageKind.deal_proposal: "Quiero alquilar esta propiedad. ¿Tenemos un trato?",
    MessageKind.deal_accepted: "¡Trato aceptado! La propiedad queda reservada para ti.",
    MessageKind.deal_rejected: "Lo sentimos, el trato fue rechazado.",
}

LISTING_UNAVAILABLE = "El anuncio no está disponible para un trato"


class DealService:
    """Motor de negociación de tratos sobre una conversación."""

    def __init__(
        self,
        db: Session,
        listing_store: Optional[ListingStore] = None,
        publisher: Optional[ChatEventPublisher] = None,
    ) -> None:
        self.db = db
        self.listing_store = listing_store or SqlListingStore(db)
        self.publisher = publisher or NullPublisher()

    def propose(self, conversation_id: UUID, requester_id: UUID) -> Conversation:
        """
        Proponer un trato. Solo el interesado (no dueño) puede proponer.

        Un anuncio admite un solo trato pendiente: la propuesta reserva el
        anuncio solo si sigue 'active' al momento de escribir.

        Args:
            conversation_id: ID de la conversación
            requester_id: Usuario que propone

        Returns:
            Conversación con deal_status 'pending'

        Raises:
            ForbiddenException: Si no participa o es el dueño del anuncio
            ConflictException: Si ya hay un trato pendiente
            InvalidOperationException: Si el trato ya fue aceptado o el anuncio no está disponible
            DealSyncException: Si el anuncio no pudo actualizarse
        """
        with conversation_locks.hold(conversation_id):
            conversation = load_conversation_for(self.db, conversation_id, requester_id, for_update=True)

            with listing_locks.hold(conversation.listing_id):
                listing = self._get_listing(conversation)

                if listing.owner_id == requester_id:
                    raise ForbiddenException("Solo el interesado puede proponer un trato")

                if conversation.deal_status == DealStatus.pending.value:
                    raise ConflictException("Ya hay un trato pendiente en esta conversación")

                if conversation.deal_status == DealStatus.accepted.value:
                    raise InvalidOperationException("El trato de esta conversación ya fue aceptado")

                if ListingStatus(listing.status) != ListingStatus.active:
                    raise InvalidOperationException(LISTING_UNAVAILABLE)

                return self._transition(
                    conversation,
                    listing,
                    actor_id=requester_id,
                    deal_status=DealStatus.pending,
                    kind=MessageKind.deal_proposal,
                    listing_status=ListingStatus.pending,
                    expected_listing_status=ListingStatus.active,
                    conflict_message=LISTING_UNAVAILABLE,
                )

    def respond(self, conversation_id: UUID, requester_id: UUID, accept: bool) -> Conversation:
        """
        Responder a un trato pendiente. Solo el dueño del anuncio puede responder.

        Aceptar deja el anuncio 'dealed' con fecha de cierre; rechazar lo
        devuelve a 'active' y permite una nueva propuesta. El rechazo solo
        libera el anuncio si sigue 'pending'; en otro estado lo deja intacto.

        Args:
            conversation_id: ID de la conversación
            requester_id: Usuario que responde
            accept: True para aceptar, False para rechazar

        Returns:
            Conversación actualizada

        Raises:
            ForbiddenException: Si no es el dueño del anuncio
            InvalidOperationException: Si no hay trato pendiente o el anuncio ya no está reservado
            DealSyncException: Si el anuncio no pudo actualizarse
        """
        with conversation_locks.hold(conversation_id):
            conversation = load_conversation_for(self.db, conversation_id, requester_id, for_update=True)

            with listing_locks.hold(conversation.listing_id):
                listing = self._get_listing(conversation)

                if listing.owner_id != requester_id:
                    raise ForbiddenException("Solo el dueño puede responder al trato")

                if conversation.deal_status != DealStatus.pending.value:
                    raise InvalidOperationException("No hay un trato pendiente para responder")

                if accept:
                    return self._transition(
                        conversation,
                        listing,
                        actor_id=requester_id,
                        deal_status=DealStatus.accepted,
                        kind=MessageKind.deal_accepted,
                        listing_status=ListingStatus.dealed,
                        expected_listing_status=ListingStatus.pending,
                        conflict_message="El anuncio ya no está reservado para este trato",
                        deal_completed_at=utcnow(),
                    )

                return self._transition(
                    conversation,
                    listing,
                    actor_id=requester_id,
                    deal_status=DealStatus.rejected,
                    kind=MessageKind.deal_rejected,
                    listing_status=ListingStatus.active,
                    expected_listing_status=ListingStatus.pending,
                )

    def _get_listing(self, conversation: Conversation):
        listing = self.listing_store.get(conversation.listing_id)
        if listing is None:
            raise NotFoundException("Anuncio no encontrado")
        return listing

    def _transition(
        self,
        conversation: Conversation,
        listing,
        *,
        actor_id: UUID,
        deal_status: DealStatus,
        kind: MessageKind,
        listing_status: ListingStatus,
        expected_listing_status: ListingStatus,
        conflict_message: Optional[str] = None,
        deal_completed_at: Optional[datetime] = None,
    ) -> Conversation:
        """
        Aplicar una transición. Sin conflict_message, un anuncio que ya no
        está en expected_listing_status se deja como está y la conversación
        cambia igual.
        """
        previous_status = ListingStatus(listing.status)
        previous_completed_at = getattr(listing, "deal_completed_at", None)

        # 1. Conversación: estado + mensaje de sistema (flush con control de versión)
        try:
            conversation.deal_status = deal_status.value
            message = crud_message.append(
                self.db,
                conversation=conversation,
                sender_id=actor_id,
                kind=kind,
                text=DEAL_MESSAGES[kind],
            )
        except StaleDataError as e:
            self.db.rollback()
            raise ConflictException("La conversación fue modificada por otra operación; reintenta") from e

        # 2. Anuncio
        listing_updated = True
        try:
            self._update_listing(listing.id, listing_status, deal_completed_at, expected_listing_status)
        except ListingStatusConflict as e:
            if conflict_message is not None:
                self.db.rollback()
                logger.info(f"Transición '{deal_status.value}' rechazada en conversación {conversation.id}: {e}")
                raise InvalidOperationException(conflict_message) from e
            listing_updated = False
            logger.warning(
                f"Anuncio {listing.id} en estado '{e.current.value}'; "
                f"se mantiene tras '{deal_status.value}' en conversación {conversation.id}"
            )
        except (ListingStoreUnavailable, NotFoundException, SQLAlchemyError) as e:
            self.db.rollback()
            logger.error(
                f"No se pudo pasar el anuncio {listing.id} a '{listing_status.value}' "
                f"(conversación {conversation.id}); se revierte el trato: {e}"
            )
            raise DealSyncException() from e

        # 3. Confirmar
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            if listing_updated and not self.listing_store.transactional:
                self._compensate(listing.id, previous_status, previous_completed_at)
            raise ConflictException("No se pudo confirmar el trato; reintenta") from e

        logger.info(
            f"Trato de conversación {conversation.id}: {deal_status.value} "
            f"(anuncio {listing.id} -> {listing_status.value if listing_updated else previous_status.value})"
        )
        publish_message(self.publisher, conversation, message)
        return conversation

    def _update_listing(
        self,
        listing_id: UUID,
        status: ListingStatus,
        deal_completed_at: Optional[datetime],
        expected: ListingStatus,
    ) -> None:
        attempts = max(1, settings.DEAL_LISTING_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                self.listing_store.set_status(
                    listing_id, status, deal_completed_at=deal_completed_at, expected=expected
                )
                return
            except ListingStoreUnavailable as e:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Almacén de anuncios no disponible (intento {attempt}/{attempts}): {e}"
                )

    def _compensate(
        self, listing_id: UUID, status: ListingStatus, deal_completed_at: Optional[datetime]
    ) -> None:
        try:
            self.listing_store.set_status(listing_id, status, deal_completed_at=deal_completed_at)
            logger.warning(f"Anuncio {listing_id} restaurado a '{status.value}' tras fallar el commit")
        except ListingStoreUnavailable as e:
            logger.error(f"No se pudo restaurar el anuncio {listing_id} a '{status.value}': {e}")
