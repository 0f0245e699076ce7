"""
Modelo ORM para Conversaciones.
"""
import enum
import uuid
from uuid import UUID
from sqlalchemy import (
    Column, Boolean, DateTime, ForeignKey, Integer, Enum, JSON, Uuid,
    CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from gharbeti.db.base import Base, utcnow


class DealStatus(str, enum.Enum):
    """Estados del trato negociado en una conversación."""
    none = "none"
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


deal_status_enum = Enum(*[s.value for s in DealStatus], name="deal_status")


class Conversation(Base):
    """
    Modelo de Conversaciones entre el dueño de un anuncio y un interesado.

    Los participantes (seller_id, buyer_id) se fijan al crear la conversación
    y no cambian. Existe a lo sumo una conversación por (anuncio, interesado).
    last_message es una copia del último mensaje del log y se escribe en el
    mismo flush que el mensaje agregado.
    """

    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id = Column(Uuid, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    seller_id = Column(Uuid, nullable=False, index=True)
    buyer_id = Column(Uuid, nullable=False, index=True)
    deal_status = Column(deal_status_enum, nullable=False, default=DealStatus.none.value)
    is_active = Column(Boolean, nullable=False, default=True)

    message_count = Column(Integer, nullable=False, default=0)
    last_message = Column(JSON)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        UniqueConstraint('listing_id', 'buyer_id', name='uq_conversation_listing_buyer'),
        CheckConstraint('seller_id <> buyer_id', name='check_conversation_distinct_participants'),
    )

    # Bloqueo optimista: cada UPDATE incrementa version_id y falla si otro escribió antes
    __mapper_args__ = {"version_id_col": version_id}

    # Relationships
    listing = relationship("Listing", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.seq",
    )

    def __repr__(self):
        return f"<Conversation {self.id} between {self.seller_id} and {self.buyer_id}>"

    @property
    def participants(self) -> list[UUID]:
        """Participantes de la conversación (dueño primero)."""
        return [self.seller_id, self.buyer_id]

    def has_participant(self, user_id: UUID) -> bool:
        """Verificar si el usuario participa en la conversación."""
        return user_id in (self.seller_id, self.buyer_id)

    def get_other_user_id(self, current_user_id: UUID) -> UUID:
        """Obtener el ID del otro usuario en la conversación."""
        return self.buyer_id if self.seller_id == current_user_id else self.seller_id
