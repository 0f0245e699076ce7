"""
Modelo ORM para Anuncios (propiedades publicadas).
"""
import enum
import uuid
from sqlalchemy import Column, String, Integer, DateTime, Enum, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from gharbeti.db.base import Base, utcnow


class ListingStatus(str, enum.Enum):
    """Estados de un anuncio."""
    active = "active"
    pending = "pending"
    dealed = "dealed"
    expired = "expired"


listing_status_enum = Enum(*[s.value for s in ListingStatus], name="listing_status")


class Listing(Base):
    """Modelo de Anuncios. El dueño es el participante 'vendedor' de cada conversación."""

    __tablename__ = "listings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    price = Column(Integer, nullable=False, default=0)
    currency = Column(String(10), nullable=False, default="NPR")
    image_url = Column(String(500))
    status = Column(listing_status_enum, nullable=False, default=ListingStatus.active.value, index=True)

    deal_completed_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint('price >= 0', name='check_listing_price_positive'),
    )

    # Relationships
    conversations = relationship("Conversation", back_populates="listing", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Listing {self.title} by user {self.owner_id}>"
