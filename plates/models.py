# plates/models.py

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String, Text

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """One durable catalog entry addressed by a fixed string key."""
    __tablename__ = "kv_entries"
    key = Column(String(128), primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
