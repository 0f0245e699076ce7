"""
Seguimiento de lectura de mensajes.

Funciones puras sobre el log de una conversación ya cargada; quien las
llama decide cuándo persistir.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID

from gharbeti.db.base import utcnow
from gharbeti.models.conversation import Conversation


def unread_count(conversation: Conversation, user_id: UUID) -> int:
    """
    Contar mensajes no leídos por un usuario.

    Args:
        conversation: Conversación con sus mensajes
        user_id: Usuario lector (se cuentan mensajes de OTROS usuarios)

    Returns:
        Cantidad de mensajes no leídos
    """
    return sum(
        1 for msg in conversation.messages
        if msg.sender_id != user_id and not msg.is_read
    )


def mark_read(conversation: Conversation, user_id: UUID, now: Optional[datetime] = None) -> int:
    """
    Marcar como leídos los mensajes recibidos por un usuario.

    Es idempotente: si no hay mensajes pendientes no modifica nada.

    Args:
        conversation: Conversación con sus mensajes
        user_id: Usuario lector
        now: Fecha de lectura (por defecto, ahora)

    Returns:
        Cantidad de mensajes marcados
    """
    read_at = now or utcnow()
    marked = 0
    for msg in conversation.messages:
        if msg.sender_id != user_id and not msg.is_read:
            msg.is_read = True
            msg.read_at = read_at
            marked += 1
    return marked
