import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from loguru import logger
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.db.schema import AuditLog


class AuditLogger:
    """
    Best-effort audit sink.
    Each entry is written in its OWN session so a failing audit write can
    never roll back the operation it describes.
    """

    def __init__(self, bind: Engine):
        self.bind = bind

    def record(
        self,
        action: str,
        actor_id: Optional[uuid.UUID] = None,
        role: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        try:
            with Session(self.bind) as session:
                entry = AuditLog(
                    action=action,
                    actor_id=actor_id,
                    role=role or "SYSTEM",
                    entity_type=entity_type,
                    entity_id=str(entity_id) if entity_id is not None else None,
                    details=details or {},
                    created_at=datetime.utcnow()
                )
                session.add(entry)
                session.commit()
                session.refresh(entry)
                return entry

        except Exception as e:
            # Audit failures are reported but never propagated
            logger.error(f"AUDIT LOG FAILED ({action}): {e}")
            return None

    def list_recent(self, limit: int = 25) -> List[AuditLog]:
        with Session(self.bind) as session:
            statement = (
                select(AuditLog)
                .order_by(AuditLog.created_at.desc())
                .limit(limit)
            )
            return list(session.exec(statement).all())
