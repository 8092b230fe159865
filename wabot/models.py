from datetime import datetime, timezone
from sqlalchemy import Column, String, Float, DateTime, JSON
from wabot.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# ── Per-sender conversation state ────────────────────────────────────
class SenderStateRecord(Base):
    __tablename__ = "sender_states"

    identifier = Column(String(255), primary_key=True)
    opt_in_status = Column(String(20), nullable=False, default="unset")
    mute_until = Column(Float, nullable=True)
    history = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
