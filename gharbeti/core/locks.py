"""
Locks por clave para serializar escrituras sobre una misma entidad.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator


class KeyedLock:
    """
    Registro de locks indexados por clave (ej: ID de conversación).

    Cada clave tiene su propio threading.RLock (reentrante en el mismo
    hilo), creado bajo demanda y eliminado cuando ningún hilo lo usa. Las
    claves distintas no se bloquean entre sí.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """
        Adquirir el lock de una clave durante el bloque with.

        Args:
            key: Clave a serializar
        """
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._waiters[key] = self._waiters.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    del self._waiters[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Un lock por conversación, compartido por HTTP y el gateway en este proceso
conversation_locks = KeyedLock()

# Un lock por anuncio: serializa las transiciones de trato de todas sus conversaciones
listing_locks = KeyedLock()
