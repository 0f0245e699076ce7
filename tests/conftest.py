"""
Configuración de pytest y fixtures compartidas.

La base de datos de pruebas es SQLite en memoria (una conexión compartida);
las tablas se crean y eliminan en cada prueba.
"""
import os

# Configuración de pruebas (antes de importar la aplicación)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-gharbeti"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"

import uuid
from typing import Callable, Dict, List, Optional

import pytest

from gharbeti.core.security import create_access_token
from gharbeti.crud.listing import ListingCreate, listing as crud_listing
from gharbeti.db.session import engine, SessionLocal
from gharbeti.models import Base, Listing, ListingStatus
from gharbeti.services.chat_service import ChatService


def pytest_configure(config):
    """Registrar markers personalizados."""
    config.addinivalue_line("markers", "unit: Unit tests (isolated component tests)")
    config.addinivalue_line("markers", "integration: Integration tests (multiple components)")


class RecordingPublisher:
    """Publicador de eventos que guarda lo publicado para inspección."""

    def __init__(self) -> None:
        self.appended: List[Dict] = []
        self.read: List[Dict] = []

    def message_appended(self, *, conversation_id, participants, sender_id, message) -> None:
        self.appended.append({
            "conversation_id": conversation_id,
            "participants": list(participants),
            "sender_id": sender_id,
            "message": message,
        })

    def messages_read(self, *, conversation_id, user_id, exclude=None) -> None:
        self.read.append({
            "conversation_id": conversation_id,
            "user_id": user_id,
            "exclude": exclude,
        })


@pytest.fixture(autouse=True)
def database():
    """Crear las tablas antes de cada prueba y eliminarlas al terminar."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    """Sesión de base de datos para la prueba."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def outsider_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_listing(db) -> Callable[..., Listing]:
    """Factory de anuncios persistidos."""

    def _make(owner_id: uuid.UUID, title: str = "Apartamento 2BHK en Lalitpur", price: int = 25000) -> Listing:
        return crud_listing.create(db, obj_in=ListingCreate(owner_id=owner_id, title=title, price=price))

    return _make


@pytest.fixture
def listing(make_listing, seller_id) -> Listing:
    """Anuncio activo del vendedor."""
    created = make_listing(seller_id)
    assert created.status == ListingStatus.active.value
    return created


@pytest.fixture
def conversation(db, listing, buyer_id):
    """Conversación entre el interesado y el dueño del anuncio."""
    created, _ = ChatService(db).get_or_create(listing.id, buyer_id)
    return created


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


def _access_token(user_id: uuid.UUID) -> str:
    return create_access_token({"sub": str(user_id)})


@pytest.fixture
def token_for() -> Callable[[uuid.UUID], str]:
    """Factory de tokens de acceso de pruebas."""
    return _access_token


@pytest.fixture
def auth_headers() -> Callable[[uuid.UUID], Dict[str, str]]:
    """Factory de cabeceras Authorization para un usuario."""

    def _headers(user_id: uuid.UUID, token: Optional[str] = None) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token or _access_token(user_id)}"}

    return _headers
