"""
Conexión de un cliente al gateway, con su cola de salida.
"""
import asyncio
import logging
import uuid
from typing import Any, Dict, Optional, Set
from uuid import UUID
from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

_CLOSE = object()


class ClientConnection:
    """
    Un socket autenticado.

    Los frames se encolan sin bloquear (enqueue) y una tarea escritora
    (run_writer) los envía en orden. Si la cola se llena o un envío falla o
    tarda demasiado, solo esta conexión se cierra; el resto no se ve afectado.
    """

    def __init__(
        self,
        websocket: WebSocket,
        user_id: UUID,
        *,
        queue_size: int = 100,
        send_timeout: float = 10.0,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.rooms: Set[str] = set()
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._send_timeout = send_timeout
        self._writer: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Task] = None

    def __repr__(self):
        return f"<ClientConnection {self.id} user={self.user_id}>"

    def start_writer(self) -> asyncio.Task:
        """Lanzar la tarea escritora (debe llamarse dentro del event loop)."""
        self._writer = asyncio.create_task(self.run_writer())
        return self._writer

    def enqueue(self, frame: Dict[str, Any]) -> bool:
        """
        Encolar un frame para envío.

        Args:
            frame: Frame a enviar

        Returns:
            True si se encoló, False si la conexión está cerrada o saturada
        """
        if self.closed:
            return False
        try:
            self._queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Cola de salida llena para {self!r}; se cierra la conexión")
            self._abort(code=1013)
            return False

    async def run_writer(self) -> None:
        """Enviar los frames encolados hasta el cierre."""
        while True:
            frame = await self._queue.get()
            if frame is _CLOSE:
                return
            try:
                await asyncio.wait_for(self.websocket.send_json(frame), timeout=self._send_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Envío a {self!r} superó {self._send_timeout}s; se cierra la conexión")
                self._abort(code=1013)
                return
            except Exception as e:
                logger.info(f"Envío a {self!r} fallido ({e}); se descarta la conexión")
                self.closed = True
                return

    def _abort(self, code: int) -> None:
        self.closed = True
        writer = self._writer
        if writer is not None and not writer.done() and writer is not asyncio.current_task():
            writer.cancel()
        if self._closer is None:
            self._closer = asyncio.create_task(self._close_socket(code))

    async def _close_socket(self, code: int) -> None:
        if WebSocketState.DISCONNECTED in (self.websocket.client_state, self.websocket.application_state):
            return
        try:
            await self.websocket.close(code=code)
        except (RuntimeError, OSError) as e:
            # El cliente se fue durante el cierre
            logger.debug(f"Socket de {self!r} ya cerrado: {e}")

    async def close(self, code: int = 1000) -> None:
        """
        Cerrar la conexión: detiene la escritora tras vaciar la cola y cierra el socket.

        Args:
            code: Código de cierre WebSocket
        """
        if self._closer is not None:
            await self._closer
            return
        if self.closed and (self._writer is None or self._writer.done()):
            return
        self.closed = True
        if self._writer is not None and not self._writer.done():
            try:
                self._queue.put_nowait(_CLOSE)
            except asyncio.QueueFull:
                self._writer.cancel()
            try:
                await asyncio.wait_for(asyncio.shield(self._writer), timeout=self._send_timeout)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                self._writer.cancel()
        await self._close_socket(code)
