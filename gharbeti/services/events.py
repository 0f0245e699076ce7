"""
Contrato de publicación de eventos del chat.

Los servicios notifican aquí cada escritura confirmada; el gateway en
tiempo real implementa el contrato y hace el fan-out a los sockets.
"""
import logging
from typing import List, Optional, Protocol
from uuid import UUID

logger = logging.getLogger(__name__)


class ChatEventPublisher(Protocol):
    """Receptor de eventos del chat. Las implementaciones no deben bloquear."""

    def message_appended(
        self,
        *,
        conversation_id: UUID,
        participants: List[UUID],
        sender_id: UUID,
        message: dict,
    ) -> None:
        ...

    def messages_read(
        self,
        *,
        conversation_id: UUID,
        user_id: UUID,
        exclude: Optional[str] = None,
    ) -> None:
        ...


class NullPublisher:
    """Publicador que descarta los eventos (scripts, pruebas, gateway ausente)."""

    def message_appended(self, *, conversation_id, participants, sender_id, message) -> None:
        logger.debug(f"Evento new_message descartado para conversación {conversation_id}")

    def messages_read(self, *, conversation_id, user_id, exclude=None) -> None:
        logger.debug(f"Evento messages_read descartado para conversación {conversation_id}")
