"""
Gateway de chat en tiempo real sobre WebSocket.

Autentica cada conexión, administra las salas (user:{id} y
conversation:{id}), despacha los eventos del cliente y hace el fan-out de
los eventos que publican los servicios. La entrega en vivo es a lo sumo una
vez: no hay reintentos ni reenvío de lo perdido.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from gharbeti.core.exceptions import ForbiddenException, GharbetiException, TransportAuthException
from gharbeti.realtime.auth import CapabilityVerifier, extract_token
from gharbeti.realtime.connection import ClientConnection
from gharbeti.realtime.events import (
    ChatRef,
    ClientEvent,
    InboundFrame,
    SendMessagePayload,
    ServerEvent,
    conversation_room,
    error_frame,
    make_frame,
    user_room,
)
from gharbeti.realtime.rooms import RoomRegistry
from gharbeti.services.chat_service import ChatService

logger = logging.getLogger(__name__)

# Códigos de cierre WebSocket
WS_CLOSE_GOING_AWAY = 1001
WS_CLOSE_TRY_AGAIN_LATER = 1013
WS_CLOSE_UNAUTHORIZED = 4401


class GatewayState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


class RealtimeGateway:
    """
    Gateway en tiempo real. Implementa ChatEventPublisher.

    Los métodos de publicación pueden llamarse desde cualquier hilo; el
    fan-out siempre se ejecuta en el event loop del gateway.
    """

    def __init__(
        self,
        verifier: CapabilityVerifier,
        session_factory: Callable[[], Session],
        *,
        send_queue_size: int = 100,
        send_timeout: float = 10.0,
    ) -> None:
        self.verifier = verifier
        self.session_factory = session_factory
        self.send_queue_size = send_queue_size
        self.send_timeout = send_timeout
        self.state = GatewayState.CREATED
        self.rooms = RoomRegistry()
        self._connections: Dict[str, ClientConnection] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handlers = {
            ClientEvent.JOIN_CHAT: self._on_join_chat,
            ClientEvent.LEAVE_CHAT: self._on_leave_chat,
            ClientEvent.TYPING: self._on_typing,
            ClientEvent.STOP_TYPING: self._on_stop_typing,
            ClientEvent.SEND_MESSAGE: self._on_send_message,
            ClientEvent.MARK_READ: self._on_mark_read,
        }

    @property
    def is_running(self) -> bool:
        return self.state == GatewayState.RUNNING

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # ==================== Ciclo de vida ====================

    def start(self) -> None:
        """Iniciar el gateway en el event loop actual."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self.state = GatewayState.RUNNING
        logger.info("Gateway en tiempo real iniciado")

    async def shutdown(self) -> None:
        """Detener el gateway y cerrar todas las conexiones."""
        if not self.is_running:
            return
        self.state = GatewayState.STOPPED
        connections = list(self._connections.values())
        self._connections.clear()
        self.rooms.clear()
        for connection in connections:
            await connection.close(code=WS_CLOSE_GOING_AWAY)
        self._loop = None
        logger.info(f"Gateway en tiempo real detenido ({len(connections)} conexiones cerradas)")

    # ==================== Conexiones ====================

    async def handle(self, websocket: WebSocket) -> None:
        """
        Atender una conexión de principio a fin: handshake, bucle de
        recepción y limpieza de salas al desconectar.
        """
        if not self.is_running:
            await websocket.close(code=WS_CLOSE_TRY_AGAIN_LATER)
            return

        try:
            user_id = self.verifier.verify(extract_token(websocket))
        except TransportAuthException as e:
            logger.warning(f"Handshake rechazado: {e.message}")
            await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
            return

        await websocket.accept()
        connection = ClientConnection(
            websocket,
            user_id,
            queue_size=self.send_queue_size,
            send_timeout=self.send_timeout,
        )
        self._connections[connection.id] = connection
        self.rooms.join(user_room(user_id), connection)
        connection.start_writer()
        logger.info(f"Usuario {user_id} conectado ({connection.id})")

        try:
            while not connection.closed:
                raw = await websocket.receive_text()
                await self._dispatch(connection, raw)
        except WebSocketDisconnect:
            logger.info(f"Usuario {user_id} desconectado ({connection.id})")
        finally:
            self.rooms.leave_all(connection)
            self._connections.pop(connection.id, None)
            await connection.close()

    async def _dispatch(self, connection: ClientConnection, raw: str) -> None:
        event: Optional[ClientEvent] = None
        try:
            frame = InboundFrame.model_validate_json(raw)
            event = frame.event
            await self._handlers[event](connection, frame.data)
        except ValidationError as e:
            connection.enqueue(error_frame(f"Frame inválido: {e.errors()[0]['msg']}", "validation_error", event))
        except GharbetiException as e:
            connection.enqueue(error_frame(e.message, e.error_code, event))
        except Exception:
            logger.exception(f"Error procesando evento {event} de {connection!r}")
            connection.enqueue(error_frame("Error interno del servidor", "internal_error", event))

    def _run_chat(self, operation: Callable[[ChatService], Any]) -> Any:
        """Ejecutar una operación del almacén con una sesión propia (en el threadpool)."""
        db = self.session_factory()
        try:
            return operation(ChatService(db, publisher=self))
        finally:
            db.close()

    # ==================== Handlers ====================

    async def _on_join_chat(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        payload = ChatRef.model_validate(data)
        await run_in_threadpool(
            self._run_chat, lambda chat: chat.check_access(payload.conversation_id, connection.user_id)
        )
        self.rooms.join(conversation_room(payload.conversation_id), connection)
        connection.enqueue(make_frame(ServerEvent.JOINED_CHAT, {"conversation_id": str(payload.conversation_id)}))

    async def _on_leave_chat(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        payload = ChatRef.model_validate(data)
        self.rooms.leave(conversation_room(payload.conversation_id), connection)
        connection.enqueue(make_frame(ServerEvent.LEFT_CHAT, {"conversation_id": str(payload.conversation_id)}))

    async def _on_typing(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        self._relay_typing(connection, data, ServerEvent.TYPING)

    async def _on_stop_typing(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        self._relay_typing(connection, data, ServerEvent.STOP_TYPING)

    def _relay_typing(self, connection: ClientConnection, data: Dict[str, Any], event: ServerEvent) -> None:
        payload = ChatRef.model_validate(data)
        room = conversation_room(payload.conversation_id)
        if room not in connection.rooms:
            raise ForbiddenException("Debes unirte a la conversación primero")
        self.rooms.broadcast(
            room,
            make_frame(event, {"conversation_id": str(payload.conversation_id), "user_id": str(connection.user_id)}),
            exclude=connection.id,
        )

    async def _on_send_message(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        payload = SendMessagePayload.model_validate(data)
        await run_in_threadpool(
            self._run_chat,
            lambda chat: chat.append_message(
                payload.conversation_id,
                connection.user_id,
                text=payload.text,
                image_url=payload.image_url,
            ),
        )

    async def _on_mark_read(self, connection: ClientConnection, data: Dict[str, Any]) -> None:
        payload = ChatRef.model_validate(data)
        await run_in_threadpool(
            self._run_chat,
            lambda chat: chat.mark_read(payload.conversation_id, connection.user_id, origin=connection.id),
        )

    # ==================== ChatEventPublisher ====================

    def message_appended(
        self,
        *,
        conversation_id: UUID,
        participants: List[UUID],
        sender_id: UUID,
        message: dict,
    ) -> None:
        """new_message a la sala de la conversación y notification a cada destinatario."""
        new_message = make_frame(
            ServerEvent.NEW_MESSAGE,
            {"conversation_id": str(conversation_id), "message": message},
        )
        notification = make_frame(
            ServerEvent.NOTIFICATION,
            {"conversation_id": str(conversation_id), "sender_id": str(sender_id), "message": message},
        )

        def deliver() -> None:
            self.rooms.broadcast(conversation_room(conversation_id), new_message)
            for user_id in participants:
                if user_id != sender_id:
                    self.rooms.broadcast(user_room(user_id), notification)

        self._schedule(deliver)

    def messages_read(
        self,
        *,
        conversation_id: UUID,
        user_id: UUID,
        exclude: Optional[str] = None,
    ) -> None:
        """messages_read a la sala de la conversación, omitiendo la conexión de origen."""
        frame = make_frame(
            ServerEvent.MESSAGES_READ,
            {"conversation_id": str(conversation_id), "user_id": str(user_id)},
        )
        self._schedule(lambda: self.rooms.broadcast(conversation_room(conversation_id), frame, exclude=exclude))

    def _schedule(self, callback: Callable[[], Any]) -> None:
        loop = self._loop
        if not self.is_running or loop is None or loop.is_closed():
            logger.info("Gateway no activo; evento descartado")
            return

        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None

        if current is loop:
            callback()
        else:
            loop.call_soon_threadsafe(callback)
