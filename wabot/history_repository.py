"""
SQLAlchemy-backed store for sender state.
Keyed by sender identifier; the value is the opt-in status plus the
ordered message history. Calls are blocking; the session store runs
them in a worker thread.
"""
import logging
from typing import Callable
from sqlalchemy.orm import Session
from wabot.database import SessionLocal
from wabot.models import SenderStateRecord

logger = logging.getLogger("history_repository")


class SenderStateRepository:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def load(self, identifier: str) -> dict | None:
        """Return the stored row as a plain dict, or None for an unseen sender."""
        db = self._session_factory()
        try:
            row = db.get(SenderStateRecord, identifier)
            if row is None:
                return None
            return {
                "identifier": row.identifier,
                "opt_in_status": row.opt_in_status,
                "mute_until": row.mute_until,
                "history": list(row.history or []),
            }
        finally:
            db.close()

    def save(self, identifier: str, opt_in_status: str, mute_until: float | None, history: list[str]):
        """Insert or overwrite the row for one sender."""
        db = self._session_factory()
        try:
            row = db.get(SenderStateRecord, identifier)
            if row is None:
                row = SenderStateRecord(identifier=identifier)
                db.add(row)
            row.opt_in_status = opt_in_status
            row.mute_until = mute_until
            row.history = list(history)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(f"Failed to persist state for {identifier}")
            raise
        finally:
            db.close()
