"""
Registro de salas del gateway.

Solo se usa desde el hilo del event loop.
"""
from typing import Any, Dict, List, Optional

from gharbeti.realtime.connection import ClientConnection


class RoomRegistry:
    """Membresía sala -> conexiones."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, ClientConnection]] = {}

    def __len__(self) -> int:
        return len(self._rooms)

    def join(self, room: str, connection: ClientConnection) -> None:
        self._rooms.setdefault(room, {})[connection.id] = connection
        connection.rooms.add(room)

    def leave(self, room: str, connection: ClientConnection) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.pop(connection.id, None)
            if not members:
                del self._rooms[room]
        connection.rooms.discard(room)

    def leave_all(self, connection: ClientConnection) -> None:
        for room in list(connection.rooms):
            self.leave(room, connection)

    def members(self, room: str) -> List[ClientConnection]:
        return list(self._rooms.get(room, {}).values())

    def broadcast(self, room: str, frame: Dict[str, Any], exclude: Optional[str] = None) -> int:
        """
        Encolar un frame para todas las conexiones de una sala.

        Args:
            room: Nombre de la sala
            frame: Frame a enviar
            exclude: ID de conexión a omitir

        Returns:
            Cantidad de conexiones que lo recibieron
        """
        delivered = 0
        for connection in self.members(room):
            if connection.id == exclude:
                continue
            if connection.enqueue(frame):
                delivered += 1
        return delivered

    def clear(self) -> None:
        for members in self._rooms.values():
            for connection in members.values():
                connection.rooms.clear()
        self._rooms.clear()
