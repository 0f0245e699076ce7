"""
CRUD para conversaciones.
"""
import logging
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import or_, desc
from sqlalchemy.exc import IntegrityError
from uuid import UUID
from gharbeti.crud.base import CRUDBase
from gharbeti.db.base import utcnow
from gharbeti.models.conversation import Conversation, DealStatus
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ConversationCreate(BaseModel):
    """Schema para crear conversación."""
    listing_id: UUID
    seller_id: UUID
    buyer_id: UUID


class ConversationUpdate(BaseModel):
    """Schema para actualizar conversación."""
    is_active: Optional[bool] = None


class CRUDConversation(CRUDBase[Conversation, ConversationCreate, ConversationUpdate]):
    """CRUD específico para conversaciones."""

    def get_for_update(self, db: Session, *, id: UUID) -> Optional[Conversation]:
        """
        Obtener una conversación bloqueando su fila hasta el fin de la transacción.

        Refresca el objeto si ya estaba en la sesión para validar sobre el
        estado confirmado más reciente.

        Args:
            db: Sesión de base de datos
            id: ID de la conversación

        Returns:
            Conversación encontrada o None
        """
        return (
            db.query(Conversation)
            .filter(Conversation.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def get_by_listing_and_buyer(
        self, db: Session, *, listing_id: UUID, buyer_id: UUID
    ) -> Optional[Conversation]:
        """
        Obtener la conversación de un interesado sobre un anuncio.

        Args:
            db: Sesión de base de datos
            listing_id: ID del anuncio
            buyer_id: ID del interesado (no dueño)

        Returns:
            Conversación encontrada o None
        """
        return db.query(Conversation).filter(
            Conversation.listing_id == listing_id,
            Conversation.buyer_id == buyer_id
        ).first()

    def get_by_user(
        self, db: Session, *, user_id: UUID, limit: Optional[int] = None,
        include_inactive: bool = False
    ) -> List[Conversation]:
        """
        Obtener conversaciones de un usuario, las más recientes primero.

        Args:
            db: Sesión de base de datos
            user_id: ID del usuario
            limit: Límite de registros (None = todas)
            include_inactive: Incluir conversaciones desactivadas

        Returns:
            Lista de conversaciones del usuario
        """
        query = db.query(Conversation).filter(
            or_(
                Conversation.seller_id == user_id,
                Conversation.buyer_id == user_id
            )
        )

        if not include_inactive:
            query = query.filter(Conversation.is_active == True)

        query = query.order_by(desc(Conversation.updated_at), desc(Conversation.created_at))
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def create_conversation(
        self, db: Session, *, listing_id: UUID, seller_id: UUID, buyer_id: UUID
    ) -> Tuple[Conversation, bool]:
        """
        Crear la conversación de un par (anuncio, interesado) o devolver la existente.

        La restricción única (listing_id, buyer_id) resuelve las creaciones
        concurrentes: si otra transacción insertó primero, se devuelve esa fila.
        Una conversación desactivada se reactiva.

        Args:
            db: Sesión de base de datos
            listing_id: ID del anuncio
            seller_id: ID del dueño del anuncio
            buyer_id: ID del interesado

        Returns:
            Tupla (conversación, creada)
        """
        existing = self.get_by_listing_and_buyer(db, listing_id=listing_id, buyer_id=buyer_id)
        if existing:
            if not existing.is_active:
                existing.is_active = True
                existing.updated_at = utcnow()
                db.add(existing)
                db.commit()
            return existing, False

        now = utcnow()
        db_obj = Conversation(
            listing_id=listing_id,
            seller_id=seller_id,
            buyer_id=buyer_id,
            deal_status=DealStatus.none.value,
            is_active=True,
            message_count=0,
            created_at=now,
            updated_at=now,
        )
        db.add(db_obj)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(f"Conversación duplicada para anuncio {listing_id} y usuario {buyer_id}; se usa la existente")
            winner = self.get_by_listing_and_buyer(db, listing_id=listing_id, buyer_id=buyer_id)
            if winner is None:
                raise
            return winner, False

        db.refresh(db_obj)
        return db_obj, True

    def deactivate(self, db: Session, *, conversation: Conversation) -> Conversation:
        """
        Desactivar una conversación (soft delete). El historial se conserva.

        Args:
            db: Sesión de base de datos
            conversation: Conversación a desactivar

        Returns:
            Conversación desactivada
        """
        conversation.is_active = False
        conversation.updated_at = utcnow()
        db.add(conversation)
        db.commit()
        return conversation


# Instancia global del CRUD
conversation = CRUDConversation(Conversation)
