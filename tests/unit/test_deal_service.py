"""
Unit tests del motor de negociación de tratos.
"""
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from gharbeti.config import settings
from gharbeti.core.exceptions import (
    ConflictException,
    DealSyncException,
    ForbiddenException,
    InvalidOperationException,
    NotFoundException,
)
from gharbeti.db.session import SessionLocal
from gharbeti.models import Conversation, Listing, ListingStatus, Message, MessageKind
from gharbeti.services.chat_service import ChatService
from gharbeti.services.deal_service import DEAL_MESSAGES, DealService
from gharbeti.services.listing_store import ListingStatusConflict, ListingStoreUnavailable, SqlListingStore


class FlakyListingStore:
    """Almacén de anuncios que falla las primeras N escrituras."""

    transactional = True

    def __init__(self, db, failures):
        self.inner = SqlListingStore(db)
        self.failures = failures
        self.attempts = 0

    def get(self, listing_id):
        return self.inner.get(listing_id)

    def set_status(self, listing_id, status, deal_completed_at=None, expected=None):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ListingStoreUnavailable("almacén de anuncios caído")
        self.inner.set_status(listing_id, status, deal_completed_at=deal_completed_at, expected=expected)


class ExternalListingStore:
    """Almacén de anuncios externo (no transaccional) en memoria."""

    transactional = False

    def __init__(self, listing):
        self.listing = SimpleNamespace(
            id=listing.id, owner_id=listing.owner_id, status=listing.status, deal_completed_at=None
        )
        self.calls = []

    def get(self, listing_id):
        return self.listing if listing_id == self.listing.id else None

    def set_status(self, listing_id, status, deal_completed_at=None, expected=None):
        current = ListingStatus(self.listing.status)
        if expected is not None and current != expected:
            raise ListingStatusConflict(listing_id, expected, current)
        self.calls.append((listing_id, status, deal_completed_at))
        self.listing.status = status.value
        self.listing.deal_completed_at = deal_completed_at


class InterleavingListingStore:
    """
    Almacén de anuncios que devuelve una lectura ya vieja: antes de la
    primera lectura ejecuta otra operación sobre el mismo anuncio.
    """

    transactional = True

    def __init__(self, db, before_first_read):
        self.inner = SqlListingStore(db)
        self.before_first_read = before_first_read

    def get(self, listing_id):
        current = self.inner.get(listing_id)
        snapshot = SimpleNamespace(
            id=current.id,
            owner_id=current.owner_id,
            status=current.status,
            deal_completed_at=current.deal_completed_at,
        )
        if self.before_first_read is not None:
            operation, self.before_first_read = self.before_first_read, None
            operation()
        return snapshot

    def set_status(self, listing_id, status, deal_completed_at=None, expected=None):
        self.inner.set_status(listing_id, status, deal_completed_at=deal_completed_at, expected=expected)


def reload(model, id):
    """Leer el estado confirmado con una sesión nueva."""
    session = SessionLocal()
    try:
        return session.get(model, id)
    finally:
        session.close()


@pytest.mark.unit
class TestPropose:
    """Propuesta de trato."""

    def test_buyer_proposes(self, db, conversation, listing, buyer_id, publisher):
        result = DealService(db, publisher=publisher).propose(conversation.id, buyer_id)

        assert result.deal_status == "pending"
        assert reload(Listing, listing.id).status == ListingStatus.pending.value

        stored = reload(Conversation, conversation.id)
        assert stored.deal_status == "pending"
        assert stored.last_message["kind"] == MessageKind.deal_proposal.value
        assert stored.last_message["sender_id"] == str(buyer_id)
        assert stored.last_message["text"] == DEAL_MESSAGES[MessageKind.deal_proposal]

        assert len(publisher.appended) == 1
        assert publisher.appended[0]["message"]["kind"] == "deal_proposal"

    def test_owner_cannot_propose(self, db, conversation, seller_id):
        with pytest.raises(ForbiddenException):
            DealService(db).propose(conversation.id, seller_id)

    def test_outsider_cannot_propose(self, db, conversation, outsider_id):
        with pytest.raises(ForbiddenException):
            DealService(db).propose(conversation.id, outsider_id)

    def test_missing_conversation(self, db, buyer_id):
        with pytest.raises(NotFoundException):
            DealService(db).propose(uuid.uuid4(), buyer_id)

    def test_duplicate_proposal_conflicts(self, db, conversation, buyer_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)

        with pytest.raises(ConflictException):
            service.propose(conversation.id, buyer_id)

        assert reload(Conversation, conversation.id).message_count == 1

    def test_listing_reserved_by_other_conversation(self, db, conversation, listing, buyer_id):
        other_buyer = uuid.uuid4()
        other, _ = ChatService(db).get_or_create(listing.id, other_buyer)
        DealService(db).propose(conversation.id, buyer_id)

        with pytest.raises(InvalidOperationException):
            DealService(db).propose(other.id, other_buyer)

        assert reload(Conversation, other.id).deal_status == "none"

    def test_expired_listing_cannot_be_proposed(self, db, conversation, listing, buyer_id):
        listing.status = ListingStatus.expired.value
        db.commit()

        with pytest.raises(InvalidOperationException):
            DealService(db).propose(conversation.id, buyer_id)


@pytest.mark.unit
class TestRespond:
    """Respuesta del dueño al trato."""

    def test_accept_closes_deal(self, db, conversation, listing, buyer_id, seller_id, publisher):
        service = DealService(db, publisher=publisher)
        service.propose(conversation.id, buyer_id)

        result = service.respond(conversation.id, seller_id, accept=True)

        assert result.deal_status == "accepted"
        stored_listing = reload(Listing, listing.id)
        assert stored_listing.status == ListingStatus.dealed.value
        assert stored_listing.deal_completed_at is not None

        stored = reload(Conversation, conversation.id)
        assert stored.last_message["kind"] == MessageKind.deal_accepted.value
        assert stored.last_message["sender_id"] == str(seller_id)
        assert [e["message"]["kind"] for e in publisher.appended] == ["deal_proposal", "deal_accepted"]

    def test_reject_reopens_listing(self, db, conversation, listing, buyer_id, seller_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)

        result = service.respond(conversation.id, seller_id, accept=False)

        assert result.deal_status == "rejected"
        assert reload(Listing, listing.id).status == ListingStatus.active.value
        assert reload(Conversation, conversation.id).last_message["kind"] == MessageKind.deal_rejected.value

    def test_can_propose_again_after_rejection(self, db, conversation, listing, buyer_id, seller_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)
        service.respond(conversation.id, seller_id, accept=False)

        result = service.propose(conversation.id, buyer_id)

        assert result.deal_status == "pending"
        assert reload(Listing, listing.id).status == ListingStatus.pending.value
        kinds = [m.kind for m in db.query(Message).order_by(Message.seq).all()]
        assert kinds == ["deal_proposal", "deal_rejected", "deal_proposal"]

    def test_accepted_deal_is_final(self, db, conversation, buyer_id, seller_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)
        service.respond(conversation.id, seller_id, accept=True)

        with pytest.raises(InvalidOperationException):
            service.propose(conversation.id, buyer_id)
        with pytest.raises(InvalidOperationException):
            service.respond(conversation.id, seller_id, accept=False)

    def test_buyer_cannot_respond(self, db, conversation, buyer_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)

        with pytest.raises(ForbiddenException):
            service.respond(conversation.id, buyer_id, accept=True)

    def test_respond_without_pending_deal(self, db, conversation, seller_id):
        with pytest.raises(InvalidOperationException):
            DealService(db).respond(conversation.id, seller_id, accept=True)


@pytest.mark.unit
class TestListingSync:
    """Consistencia entre conversación y anuncio."""

    def test_listing_failure_leaves_no_partial_mutation(self, db, conversation, listing, buyer_id, publisher):
        store = FlakyListingStore(db, failures=100)

        with pytest.raises(DealSyncException):
            DealService(db, listing_store=store, publisher=publisher).propose(conversation.id, buyer_id)

        assert store.attempts == settings.DEAL_LISTING_RETRIES
        stored = reload(Conversation, conversation.id)
        assert stored.deal_status == "none"
        assert stored.message_count == 0
        assert stored.last_message is None
        assert db.query(Message).count() == 0
        assert reload(Listing, listing.id).status == ListingStatus.active.value
        assert publisher.appended == []

    def test_transient_listing_failure_is_retried(self, db, conversation, listing, buyer_id):
        store = FlakyListingStore(db, failures=1)

        result = DealService(db, listing_store=store).propose(conversation.id, buyer_id)

        assert store.attempts == 2
        assert result.deal_status == "pending"
        assert reload(Listing, listing.id).status == ListingStatus.pending.value

    def test_failed_commit_restores_external_listing(self, db, conversation, listing, buyer_id, publisher, monkeypatch):
        store = ExternalListingStore(listing)

        def failing_commit():
            raise SQLAlchemyError("conexión perdida")

        monkeypatch.setattr(db, "commit", failing_commit)

        with pytest.raises(ConflictException):
            DealService(db, listing_store=store, publisher=publisher).propose(conversation.id, buyer_id)

        assert [status for _, status, _ in store.calls] == [ListingStatus.pending, ListingStatus.active]
        assert store.listing.status == ListingStatus.active.value
        assert reload(Conversation, conversation.id).deal_status == "none"
        assert publisher.appended == []


@pytest.mark.unit
class TestOnePendingDealPerListing:
    """Un anuncio admite un solo trato pendiente entre todas sus conversaciones."""

    def test_interleaved_proposals_reserve_listing_once(self, db, conversation, listing, buyer_id, publisher):
        other_buyer = uuid.uuid4()
        other, _ = ChatService(db).get_or_create(listing.id, other_buyer)
        store = InterleavingListingStore(db, lambda: DealService(db).propose(other.id, other_buyer))

        with pytest.raises(InvalidOperationException):
            DealService(db, listing_store=store, publisher=publisher).propose(conversation.id, buyer_id)

        statuses = [reload(Conversation, c).deal_status for c in (conversation.id, other.id)]
        assert statuses == ["none", "pending"]
        assert reload(Conversation, conversation.id).message_count == 0
        assert reload(Listing, listing.id).status == ListingStatus.pending.value
        assert publisher.appended == []

    def test_reject_does_not_reopen_closed_listing(self, db, conversation, listing, buyer_id, seller_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)
        listing.status = ListingStatus.dealed.value
        db.commit()

        result = service.respond(conversation.id, seller_id, accept=False)

        assert result.deal_status == "rejected"
        assert reload(Listing, listing.id).status == ListingStatus.dealed.value
        assert reload(Conversation, conversation.id).last_message["kind"] == MessageKind.deal_rejected.value

    def test_accept_requires_reserved_listing(self, db, conversation, listing, buyer_id, seller_id):
        service = DealService(db)
        service.propose(conversation.id, buyer_id)
        listing.status = ListingStatus.expired.value
        db.commit()

        with pytest.raises(InvalidOperationException):
            service.respond(conversation.id, seller_id, accept=True)

        stored = reload(Conversation, conversation.id)
        assert stored.deal_status == "pending"
        assert stored.message_count == 1
        assert reload(Listing, listing.id).status == ListingStatus.expired.value
