"""
CRUD para mensajes.
"""
import uuid
from typing import Dict, List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import func, or_
from uuid import UUID
from gharbeti.crud.base import CRUDBase
from gharbeti.db.base import utcnow
from gharbeti.models.conversation import Conversation
from gharbeti.models.message import Message, MessageKind
from gharbeti.schemas.message import MessageCreate
from pydantic import BaseModel


class MessageUpdate(BaseModel):
    """Schema para actualizar mensaje."""
    pass


class CRUDMessage(CRUDBase[Message, MessageCreate, MessageUpdate]):
    """CRUD específico para mensajes."""

    def append(
        self,
        db: Session,
        *,
        conversation: Conversation,
        sender_id: UUID,
        kind: MessageKind,
        text: Optional[str] = None,
        image_url: Optional[str] = None,
    ) -> Message:
        """
        Agregar un mensaje al final del log de una conversación, sin commit.

        En el mismo flush se actualizan last_message, message_count y
        updated_at de la conversación, de modo que el resumen nunca queda
        desfasado del log. El UPDATE de la conversación valida version_id.

        Args:
            db: Sesión de base de datos
            conversation: Conversación (cargada en esta sesión)
            sender_id: ID del remitente
            kind: Tipo de mensaje
            text: Texto (opcional para imágenes)
            image_url: URL de imagen (opcional)

        Returns:
            Mensaje agregado
        """
        now = utcnow()
        db_obj = Message(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            seq=conversation.message_count,
            sender_id=sender_id,
            text=text,
            image_url=image_url,
            kind=kind.value,
            is_read=False,
            created_at=now,
        )
        # Mantener la colección cargada consistente con el log persistido
        conversation.messages.append(db_obj)

        conversation.message_count = conversation.message_count + 1
        conversation.last_message = db_obj.snapshot()
        conversation.updated_at = now
        db.add(conversation)
        db.flush()
        return db_obj

    def unread_counts_by_conversation(
        self, db: Session, *, user_id: UUID, conversation_ids: List[UUID]
    ) -> Dict[UUID, int]:
        """
        Contar mensajes no leídos por conversación en una sola consulta.

        Args:
            db: Sesión de base de datos
            user_id: ID del usuario (se cuentan mensajes de OTROS usuarios)
            conversation_ids: Conversaciones a considerar

        Returns:
            Diccionario conversation_id -> cantidad (solo las que tienen no leídos)
        """
        if not conversation_ids:
            return {}
        rows = (
            db.query(Message.conversation_id, func.count(Message.id))
            .filter(
                Message.conversation_id.in_(conversation_ids),
                Message.sender_id != user_id,
                Message.is_read == False
            )
            .group_by(Message.conversation_id)
            .all()
        )
        return {conversation_id: count for conversation_id, count in rows}

    def get_unread_total(self, db: Session, *, user_id: UUID) -> int:
        """
        Obtener cantidad total de mensajes no leídos del usuario
        en sus conversaciones activas.

        Args:
            db: Sesión de base de datos
            user_id: ID del usuario

        Returns:
            Cantidad de mensajes no leídos
        """
        return (
            db.query(Message)
            .join(Conversation, Message.conversation_id == Conversation.id)
            .filter(
                or_(
                    Conversation.seller_id == user_id,
                    Conversation.buyer_id == user_id
                ),
                Conversation.is_active == True,
                Message.sender_id != user_id,
                Message.is_read == False
            )
            .count()
        )


# Instancia global del CRUD
message = CRUDMessage(Message)
