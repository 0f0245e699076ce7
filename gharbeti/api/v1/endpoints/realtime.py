"""
Endpoint WebSocket del chat en tiempo real.

Autenticación: ?token=<jwt> o cabecera Authorization: Bearer <jwt>.
Frames JSON {"event": ..., "data": {...}}.
"""
from fastapi import APIRouter, WebSocket

router = APIRouter()


@router.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    """Conexión al gateway en tiempo real de la aplicación."""
    await websocket.app.state.gateway.handle(websocket)
