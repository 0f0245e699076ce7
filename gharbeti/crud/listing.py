"""
CRUD para anuncios.
"""
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from sqlalchemy.orm import Session

from gharbeti.crud.base import CRUDBase
from gharbeti.db.base import utcnow
from gharbeti.models.listing import Listing, ListingStatus


class ListingCreate(BaseModel):
    """Schema para crear anuncio."""

    owner_id: UUID
    title: str
    price: int = 0
    currency: str = "NPR"
    image_url: Optional[str] = None
    expires_at: Optional[datetime] = None


class ListingUpdate(BaseModel):
    """Schema para actualizar anuncio."""

    status: Optional[ListingStatus] = None


class CRUDListing(CRUDBase[Listing, ListingCreate, ListingUpdate]):
    """CRUD específico para anuncios."""

    def get_for_update(self, db: Session, *, id: UUID) -> Optional[Listing]:
        """
        Obtener un anuncio bloqueando su fila hasta el fin de la transacción.

        Refresca el objeto si ya estaba en la sesión, para validar su estado
        sobre lo último confirmado.

        Args:
            db: Sesión de base de datos
            id: ID del anuncio

        Returns:
            Anuncio encontrado o None
        """
        return (
            db.query(Listing)
            .filter(Listing.id == id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    def set_status(
        self,
        db: Session,
        *,
        listing: Listing,
        status: ListingStatus,
        deal_completed_at: Optional[datetime] = None,
    ) -> Listing:
        """
        Cambiar el estado de un anuncio sin hacer commit.

        Es idempotente: aplicar dos veces el mismo estado deja el mismo resultado.

        Args:
            db: Sesión de base de datos
            listing: Anuncio a actualizar
            status: Nuevo estado
            deal_completed_at: Fecha de cierre del trato (solo para 'dealed')

        Returns:
            Anuncio actualizado
        """
        return self.update(
            db,
            db_obj=listing,
            obj_in={
                "status": status.value,
                "deal_completed_at": deal_completed_at if status == ListingStatus.dealed else None,
                "updated_at": utcnow(),
            },
            commit=False,
        )


# Instancia global del CRUD
listing = CRUDListing(Listing)
