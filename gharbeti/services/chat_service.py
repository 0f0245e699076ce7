"""
Servicio de conversaciones: ciclo de vida de conversaciones y su log de mensajes.

Toda escritura sobre una conversación se hace bajo su lock (en este proceso)
y con la fila bloqueada / versionada (entre procesos). Los eventos se
publican después del commit y antes de soltar el lock, así el orden de
publicación de una conversación coincide con el orden de sus escrituras.
"""
import logging
from typing import List, Optional, Tuple
from uuid import UUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from gharbeti.config import settings
from gharbeti.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidOperationException,
    NotFoundException,
    ValidationException,
)
from gharbeti.core.locks import conversation_locks
from gharbeti.crud.conversation import conversation as crud_conversation
from gharbeti.crud.message import message as crud_message
from gharbeti.models.conversation import Conversation
from gharbeti.models.message import Message, MessageKind
from gharbeti.schemas.message import MessageResponse
from gharbeti.services import read_tracking
from gharbeti.services.events import ChatEventPublisher, NullPublisher
from gharbeti.services.listing_store import ListingStore, SqlListingStore

logger = logging.getLogger(__name__)


def load_conversation_for(
    db: Session, conversation_id: UUID, user_id: UUID, *, for_update: bool = False
) -> Conversation:
    """
    Cargar una conversación verificando que el usuario participa en ella.

    Args:
        db: Sesión de base de datos
        conversation_id: ID de la conversación
        user_id: Usuario que accede
        for_update: Bloquear la fila y refrescar el estado

    Returns:
        Conversación

    Raises:
        NotFoundException: Si la conversación no existe
        ForbiddenException: Si el usuario no es participante
    """
    if for_update:
        conversation = crud_conversation.get_for_update(db, id=conversation_id)
    else:
        conversation = crud_conversation.get(db, id=conversation_id)

    if conversation is None:
        raise NotFoundException("Conversación no encontrada")

    if not conversation.has_participant(user_id):
        raise ForbiddenException("No tienes acceso a esta conversación")

    return conversation


def publish_message(publisher: ChatEventPublisher, conversation: Conversation, message: Message) -> None:
    """Publicar un mensaje recién confirmado a los participantes."""
    publisher.message_appended(
        conversation_id=conversation.id,
        participants=conversation.participants,
        sender_id=message.sender_id,
        message=MessageResponse.model_validate(message).model_dump(mode="json"),
    )


class ChatService:
    """Operaciones del almacén de conversaciones."""

    def __init__(
        self,
        db: Session,
        listing_store: Optional[ListingStore] = None,
        publisher: Optional[ChatEventPublisher] = None,
    ) -> None:
        self.db = db
        self.listing_store = listing_store or SqlListingStore(db)
        self.publisher = publisher or NullPublisher()

    def get_or_create(self, listing_id: UUID, user_id: UUID) -> Tuple[Conversation, bool]:
        """
        Obtener o crear la conversación entre un usuario y el dueño de un anuncio.

        Args:
            listing_id: ID del anuncio
            user_id: Usuario interesado

        Returns:
            Tupla (conversación, creada)

        Raises:
            NotFoundException: Si el anuncio no existe
            InvalidOperationException: Si el usuario es el dueño del anuncio
        """
        listing = self.listing_store.get(listing_id)
        if listing is None:
            raise NotFoundException("Anuncio no encontrado")

        if listing.owner_id == user_id:
            raise InvalidOperationException("No puedes iniciar una conversación con tu propio anuncio")

        with conversation_locks.hold(("listing", listing_id, user_id)):
            conversation, created = crud_conversation.create_conversation(
                self.db, listing_id=listing_id, seller_id=listing.owner_id, buyer_id=user_id
            )

        if created:
            logger.info(f"Conversación {conversation.id} creada para anuncio {listing_id}")
        return conversation, created

    def list_for_user(self, user_id: UUID) -> List[Tuple[Conversation, int]]:
        """
        Listar las conversaciones activas de un usuario con su cantidad de no leídos.

        Args:
            user_id: ID del usuario

        Returns:
            Lista de tuplas (conversación, no leídos), más recientes primero
        """
        conversations = crud_conversation.get_by_user(self.db, user_id=user_id)
        unread = crud_message.unread_counts_by_conversation(
            self.db, user_id=user_id, conversation_ids=[c.id for c in conversations]
        )
        return [(c, unread.get(c.id, 0)) for c in conversations]

    def check_access(self, conversation_id: UUID, user_id: UUID) -> Conversation:
        """Verificar que la conversación existe y el usuario participa en ella."""
        return load_conversation_for(self.db, conversation_id, user_id)

    def get(self, conversation_id: UUID, requester_id: UUID) -> Conversation:
        """
        Obtener una conversación. Marca como leídos los mensajes recibidos
        por quien la solicita.

        Args:
            conversation_id: ID de la conversación
            requester_id: Usuario que la solicita

        Returns:
            Conversación con sus mensajes
        """
        with conversation_locks.hold(conversation_id):
            conversation = load_conversation_for(self.db, conversation_id, requester_id, for_update=True)
            self._mark_read_locked(conversation, requester_id, origin=None)
        return conversation

    def mark_read(self, conversation_id: UUID, user_id: UUID, origin: Optional[str] = None) -> int:
        """
        Marcar como leídos los mensajes recibidos por un usuario.

        Args:
            conversation_id: ID de la conversación
            user_id: Usuario lector
            origin: Conexión en tiempo real que originó la lectura (se excluye del aviso)

        Returns:
            Cantidad de mensajes marcados
        """
        with conversation_locks.hold(conversation_id):
            conversation = load_conversation_for(self.db, conversation_id, user_id, for_update=True)
            return self._mark_read_locked(conversation, user_id, origin=origin)

    def _mark_read_locked(self, conversation: Conversation, user_id: UUID, origin: Optional[str]) -> int:
        marked = read_tracking.mark_read(conversation, user_id)
        if marked == 0:
            # Liberar el bloqueo de fila sin escribir
            self.db.rollback()
            return 0

        self.db.commit()
        self.publisher.messages_read(conversation_id=conversation.id, user_id=user_id, exclude=origin)
        return marked

    def append_message(
        self,
        conversation_id: UUID,
        sender_id: UUID,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Message:
        """
        Agregar un mensaje de un participante.

        El tipo es 'image' si hay imagen y 'text' en otro caso. Si la
        conversación estaba desactivada, vuelve a activarse.

        Args:
            conversation_id: ID de la conversación
            sender_id: Remitente
            text: Texto del mensaje
            image_url: URL de imagen ya almacenada

        Returns:
            Mensaje persistido

        Raises:
            ValidationException: Si no hay texto ni imagen
            NotFoundException: Si la conversación no existe
            ForbiddenException: Si el remitente no participa
            ConflictException: Si las escrituras concurrentes agotan los reintentos
        """
        text = text.strip() if text else None
        image_url = image_url.strip() if image_url else None
        if not text and not image_url:
            raise ValidationException("El mensaje debe tener texto o imagen")

        kind = MessageKind.image if image_url else MessageKind.text
        attempts = max(1, settings.STORE_WRITE_RETRIES)

        for attempt in range(1, attempts + 1):
            with conversation_locks.hold(conversation_id):
                conversation = load_conversation_for(self.db, conversation_id, sender_id, for_update=True)
                try:
                    conversation.is_active = True
                    message = crud_message.append(
                        self.db,
                        conversation=conversation,
                        sender_id=sender_id,
                        kind=kind,
                        text=text,
                        image_url=image_url,
                    )
                    self.db.commit()
                except (StaleDataError, IntegrityError) as e:
                    self.db.rollback()
                    if attempt == attempts:
                        raise ConflictException("La conversación está siendo modificada; reintenta") from e
                    logger.warning(
                        f"Escritura concurrente en conversación {conversation_id} "
                        f"(intento {attempt}/{attempts}): {e}"
                    )
                    continue

                publish_message(self.publisher, conversation, message)
                return message

    def set_inactive(self, conversation_id: UUID, requester_id: UUID) -> Conversation:
        """
        Desactivar una conversación (soft delete); el historial se conserva.

        Args:
            conversation_id: ID de la conversación
            requester_id: Usuario que la desactiva

        Returns:
            Conversación desactivada
        """
        with conversation_locks.hold(conversation_id):
            conversation = load_conversation_for(self.db, conversation_id, requester_id, for_update=True)
            return crud_conversation.deactivate(self.db, conversation=conversation)

    def get_unread_total(self, user_id: UUID) -> int:
        """Total de mensajes no leídos del usuario en sus conversaciones activas."""
        return crud_message.get_unread_total(self.db, user_id=user_id)
