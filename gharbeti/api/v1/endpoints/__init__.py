"""
Endpoints de la API v1.
"""
from gharbeti.api.v1.endpoints import (
    conversations,
    deals,
    realtime,
)

__all__ = [
    "conversations",
    "deals",
    "realtime",
]
