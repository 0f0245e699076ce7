"""
Base declarativa de SQLAlchemy.
Todos los modelos heredan de esta clase base.
"""
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base


def utcnow() -> datetime:
    """Fecha y hora actual en UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


# Base declarativa de SQLAlchemy
Base = declarative_base()
