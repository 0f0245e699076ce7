"""
Módulo de modelos ORM.
Importa todos los modelos para que SQLAlchemy los reconozca.
"""
from gharbeti.db.base import Base

# Anuncios
from gharbeti.models.listing import Listing, ListingStatus

# Chat
from gharbeti.models.conversation import Conversation, DealStatus
from gharbeti.models.message import Message, MessageKind

__all__ = [
    "Base",
    # Anuncios
    "Listing",
    "ListingStatus",
    # Chat
    "Conversation",
    "DealStatus",
    "Message",
    "MessageKind",
]
