"""
Modelo ORM para Mensajes.
"""
import enum
import uuid
from sqlalchemy import Column, Text, String, Boolean, DateTime, ForeignKey, Integer, Enum, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from gharbeti.db.base import Base, utcnow


class MessageKind(str, enum.Enum):
    """Tipos de mensaje del chat."""
    text = "text"
    image = "image"
    deal_proposal = "deal_proposal"
    deal_accepted = "deal_accepted"
    deal_rejected = "deal_rejected"


message_kind_enum = Enum(*[k.value for k in MessageKind], name="message_kind")


class Message(Base):
    """
    Modelo de Mensajes del chat.

    Un mensaje es inmutable una vez agregado, salvo is_read/read_at.
    seq define el orden de inserción dentro de la conversación.
    """

    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    seq = Column(Integer, nullable=False)
    sender_id = Column(Uuid, nullable=False)
    text = Column(Text)
    image_url = Column(String(500))
    kind = Column(message_kind_enum, nullable=False, default=MessageKind.text.value)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint('conversation_id', 'seq', name='uq_message_conversation_seq'),
    )

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")

    def __repr__(self):
        return f"<Message {self.id} from {self.sender_id}>"

    def snapshot(self) -> dict:
        """Copia serializable del mensaje para Conversation.last_message."""
        return {
            "id": str(self.id),
            "sender_id": str(self.sender_id),
            "text": self.text,
            "image_url": self.image_url,
            "kind": self.kind,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
