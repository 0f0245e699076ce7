"""
Configuración de sesión de base de datos SQLAlchemy con patrón Singleton.
"""
import logging
from sqlalchemy import create_engine, Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import Optional
from gharbeti.config import get_settings

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Singleton para la conexión a la base de datos.
    Garantiza una única instancia de engine y sessionmaker.
    """
    _instance: Optional['DatabaseConnection'] = None
    _engine: Optional[Engine] = None
    _session_factory: Optional[sessionmaker] = None

    def __new__(cls):
        """Implementación del patrón Singleton."""
        if cls._instance is None:
            cls._instance = super(DatabaseConnection, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        """Inicializar conexión solo una vez."""
        if self._engine is None:
            settings = get_settings()

            if settings.DATABASE_URL.startswith("sqlite"):
                # SQLite (desarrollo y pruebas): una sola conexión compartida entre hilos
                self._engine = create_engine(
                    settings.DATABASE_URL,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                    echo=settings.DEBUG,
                )
            else:
                self._engine = create_engine(
                    settings.DATABASE_URL,
                    pool_pre_ping=True,      # Verificar conexiones antes de usar
                    pool_recycle=3600,        # Reciclar conexiones cada hora
                    pool_size=5,              # Tamaño del pool de conexiones
                    max_overflow=10,          # Conexiones adicionales permitidas
                    echo=settings.DEBUG,      # Log SQL queries en modo debug
                )

            # expire_on_commit=False: los objetos se serializan después del commit
            self._session_factory = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self._engine
            )

    @property
    def engine(self) -> Engine:
        """Obtener engine de SQLAlchemy."""
        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Obtener factory de sesiones."""
        return self._session_factory

    def create_tables(self) -> None:
        """Crear las tablas que no existan (desarrollo / pruebas)."""
        # Importar modelos para registrarlos en el metadata
        from gharbeti.models import Base

        Base.metadata.create_all(bind=self._engine)
        logger.info("Tablas verificadas/creadas")


# Instancia Singleton
_db = DatabaseConnection()

# Exports de uso común
engine = _db.engine
SessionLocal = _db.session_factory


def get_db_connection() -> DatabaseConnection:
    """Obtener instancia Singleton de conexión."""
    return _db
