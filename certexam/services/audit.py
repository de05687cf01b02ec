from typing import Optional, Dict, Any
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
import logging

from certexam.models.orm import SystemLog, LogLevel, LogCategory
from certexam.repositories import SystemLogRepository

logger = logging.getLogger(__name__)

def client_info(request: Optional[Request]) -> Dict[str, Optional[str]]:
    if request is None:
        return {"ip_address": None, "user_agent": None}
    forwarded = request.headers.get("x-forwarded-for")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return {"ip_address": ip, "user_agent": request.headers.get("user-agent")}

class AuditLog:
    """Append-only system log. Writes go through a dedicated session so they
    are committed independently of the caller's transaction."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(
        self,
        level: LogLevel,
        category: LogCategory,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> None:
        entry = SystemLog(
            level=LogLevel(level).value,
            category=LogCategory(category).value,
            message=message,
            details=metadata or {},
            user_id=user_id,
            **client_info(request),
        )
        with self.session_factory() as db:
            SystemLogRepository(db).add(entry)
            db.commit()

    def record_safely(self, *args, **kwargs) -> bool:
        """Like ``record`` but never raises on a store failure; returns whether the entry was written."""
        try:
            self.record(*args, **kwargs)
            return True
        except SQLAlchemyError:
            logger.exception("Failed to write system log entry")
            return False
