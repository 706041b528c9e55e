"""Audit trail helpers."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .access import Principal
from .errors import InfrastructureError
from .models import Account, AuditLog


logger = logging.getLogger(__name__)


def record_audit_event(
    session: Session,
    *,
    actor: Optional[Account | Principal],
    action: str,
    summary: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> AuditLog:
    """Persist an :class:`AuditLog` entry."""

    entry = AuditLog(
        actor_id=actor.id if actor and actor.id is not None else None,
        action=action,
        summary=summary,
        data=data or {},
    )
    try:
        session.add(entry)
        session.flush()
        if commit:
            session.commit()
            session.refresh(entry)
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Failed to record audit event %s", action)
        raise InfrastructureError() from exc
    return entry


__all__ = ["record_audit_event"]
