"""
Router principal de la API v1.
Incluye todos los endpoints de la aplicación.
"""
from fastapi import APIRouter

from gharbeti.api.v1.endpoints import (
    conversations,
    deals,
    realtime,
)

api_router = APIRouter()

# ============================================================================
# CHAT
# ============================================================================
api_router.include_router(
    conversations.router,
    prefix="/conversations",
    tags=["Chat"]
)

# ============================================================================
# TRATOS
# ============================================================================
api_router.include_router(
    deals.router,
    prefix="/conversations",
    tags=["Tratos"]
)

# ============================================================================
# TIEMPO REAL
# ============================================================================
api_router.include_router(
    realtime.router,
    prefix="",  # Ya tiene el path completo (/ws)
    tags=["Tiempo real"]
)
