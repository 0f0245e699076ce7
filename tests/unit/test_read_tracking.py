"""
Unit tests del seguimiento de lectura.

Las funciones operan sobre objetos en memoria, sin base de datos.
"""
import uuid
from datetime import datetime, timezone

import pytest

from gharbeti.models.conversation import Conversation
from gharbeti.models.message import Message, MessageKind
from gharbeti.services import read_tracking


def build_conversation(seller, buyer, senders):
    conversation = Conversation(id=uuid.uuid4(), listing_id=uuid.uuid4(), seller_id=seller, buyer_id=buyer)
    for seq, sender in enumerate(senders):
        conversation.messages.append(
            Message(
                id=uuid.uuid4(),
                seq=seq,
                sender_id=sender,
                text=f"mensaje {seq}",
                kind=MessageKind.text.value,
                is_read=False,
            )
        )
    return conversation


@pytest.mark.unit
class TestUnreadCount:
    """Conteo de mensajes no leídos."""

    def test_counts_only_messages_from_others(self):
        seller, buyer = uuid.uuid4(), uuid.uuid4()
        conversation = build_conversation(seller, buyer, [buyer, seller, seller, buyer])

        assert read_tracking.unread_count(conversation, buyer) == 2
        assert read_tracking.unread_count(conversation, seller) == 2

    def test_own_messages_never_count(self):
        seller, buyer = uuid.uuid4(), uuid.uuid4()
        conversation = build_conversation(seller, buyer, [buyer, buyer, buyer])

        assert read_tracking.unread_count(conversation, buyer) == 0

    def test_empty_conversation(self):
        conversation = build_conversation(uuid.uuid4(), uuid.uuid4(), [])

        assert read_tracking.unread_count(conversation, conversation.buyer_id) == 0


@pytest.mark.unit
class TestMarkRead:
    """Marcado de mensajes como leídos."""

    def test_marks_received_messages_and_sets_read_at(self):
        seller, buyer = uuid.uuid4(), uuid.uuid4()
        conversation = build_conversation(seller, buyer, [seller, buyer, seller])
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        marked = read_tracking.mark_read(conversation, buyer, now=now)

        assert marked == 2
        received = [m for m in conversation.messages if m.sender_id == seller]
        assert all(m.is_read and m.read_at == now for m in received)
        assert read_tracking.unread_count(conversation, buyer) == 0

    def test_does_not_touch_own_messages(self):
        seller, buyer = uuid.uuid4(), uuid.uuid4()
        conversation = build_conversation(seller, buyer, [seller, buyer])

        read_tracking.mark_read(conversation, buyer)

        own = [m for m in conversation.messages if m.sender_id == buyer]
        assert not own[0].is_read
        assert own[0].read_at is None
        assert read_tracking.unread_count(conversation, seller) == 1

    def test_is_idempotent(self):
        seller, buyer = uuid.uuid4(), uuid.uuid4()
        conversation = build_conversation(seller, buyer, [seller, seller])
        first = datetime(2024, 5, 1, tzinfo=timezone.utc)

        assert read_tracking.mark_read(conversation, buyer, now=first) == 2
        assert read_tracking.mark_read(conversation, buyer) == 0
        assert all(m.read_at == first for m in conversation.messages)
