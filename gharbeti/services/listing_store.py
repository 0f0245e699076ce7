"""
Acceso al almacén de anuncios desde el flujo de tratos.
"""
from datetime import datetime
from typing import Any, Optional, Protocol
from uuid import UUID
from sqlalchemy.orm import Session

from gharbeti.core.exceptions import NotFoundException
from gharbeti.crud.listing import listing as crud_listing
from gharbeti.models.listing import ListingStatus


class ListingStoreUnavailable(Exception):
    """Fallo transitorio del almacén de anuncios; la operación puede reintentarse."""


class ListingStatusConflict(Exception):
    """El anuncio no estaba en el estado esperado al momento de escribir."""

    def __init__(self, listing_id: UUID, expected: ListingStatus, current: ListingStatus) -> None:
        self.listing_id = listing_id
        self.expected = expected
        self.current = current
        super().__init__(
            f"Anuncio {listing_id} en estado '{current.value}', se esperaba '{expected.value}'"
        )


class ListingStore(Protocol):
    """
    Contrato del almacén de anuncios.

    transactional indica si set_status participa en la transacción de la
    conversación (misma sesión) o se confirma por separado.
    """

    transactional: bool

    def get(self, listing_id: UUID) -> Optional[Any]:
        """Devuelve un objeto con id, owner_id y status, o None."""
        ...

    def set_status(
        self,
        listing_id: UUID,
        status: ListingStatus,
        deal_completed_at: Optional[datetime] = None,
        expected: Optional[ListingStatus] = None,
    ) -> None:
        """
        Cambia el estado del anuncio.

        Con expected, el cambio solo se aplica si el estado actual coincide;
        si no, lanza ListingStatusConflict. Sin expected es idempotente.
        """
        ...


class SqlListingStore:
    """Almacén de anuncios en la misma base de datos que las conversaciones."""

    transactional = True

    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self, listing_id: UUID):
        return crud_listing.get(self.db, id=listing_id)

    def set_status(
        self,
        listing_id: UUID,
        status: ListingStatus,
        deal_completed_at: Optional[datetime] = None,
        expected: Optional[ListingStatus] = None,
    ) -> None:
        listing = crud_listing.get_for_update(self.db, id=listing_id)
        if listing is None:
            raise NotFoundException("Anuncio no encontrado")
        current = ListingStatus(listing.status)
        if expected is not None and current != expected:
            raise ListingStatusConflict(listing_id, expected, current)
        crud_listing.set_status(
            self.db, listing=listing, status=status, deal_completed_at=deal_completed_at
        )
