"""Audit logging service."""
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
import hashlib
import json
from where2meet.backend.db.models import AuditLog

SYSTEM_ACTOR = "system"


class AuditService:
    """Service for audit logging."""

    def log_action(
        self,
        action: str,
        event_id: Optional[str],
        actor: Optional[str],
        details: Optional[Dict[str, Any]] = None,
        db: Session = None,
        commit: bool = True
    ) -> Optional[AuditLog]:
        """
        Log an action to audit log.

        Args:
            action: Action name (event_created, generation_failed, ...)
            event_id: Event ID (if applicable)
            actor: Nickname of the participant acting, or None for the system
            details: Additional structured details (optional)
            db: Database session
            commit: Commit immediately; pass False to join the caller's transaction

        Returns:
            AuditLog entry or None if db not provided
        """
        if not db:
            return None

        after_hash = None
        if details:
            after_hash = hashlib.sha256(
                json.dumps(details, sort_keys=True, default=str).encode()
            ).hexdigest()[:16]

        audit_entry = AuditLog(
            event_id=event_id,
            actor=actor or SYSTEM_ACTOR,
            action=action,
            after_hash=after_hash,
            details=details or {}
        )

        db.add(audit_entry)
        if commit:
            db.commit()
            db.refresh(audit_entry)

        return audit_entry

    def history(self, event_id: str, db: Session) -> list:
        """Audit entries for an event, oldest first."""
        return (
            db.query(AuditLog)
            .filter_by(event_id=event_id)
            .order_by(AuditLog.timestamp, AuditLog.id)
            .all()
        )
