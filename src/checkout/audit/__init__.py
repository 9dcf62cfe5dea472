"""Audit sink factory and the never-failing ``record`` helper.

Audit logging must never break the operation being audited: ``record``
catches every sink failure, logs it, and reports it as ``False``.
"""

import structlog

from checkout.audit.port import AuditEntry, AuditSink, InMemoryAuditSink

logger = structlog.get_logger(__name__)

_current_sink: AuditSink | None = None


def get_audit_sink() -> AuditSink:
    """Return the current audit sink. Defaults to InMemoryAuditSink."""
    global _current_sink
    if _current_sink is None:
        _current_sink = InMemoryAuditSink()
    return _current_sink


def set_audit_sink(sink: AuditSink) -> None:
    """Override the active audit sink (useful for tests)."""
    global _current_sink
    _current_sink = sink


def reset_audit_sink() -> None:
    """Reset to default audit sink."""
    global _current_sink
    _current_sink = None


def record(
    action: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    notes: str | None = None,
) -> bool:
    entry = AuditEntry(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        actor_id=str(actor_id) if actor_id else None,
        old_values=old_values,
        new_values=new_values,
        notes=notes,
    )
    try:
        get_audit_sink().record(entry)
    except Exception:
        logger.exception(
            "Failed to write audit entry", action=action, entity_type=entity_type, entity_id=str(entity_id)
        )
        return False
    return True


__all__ = [
    "AuditEntry",
    "AuditSink",
    "InMemoryAuditSink",
    "get_audit_sink",
    "record",
    "reset_audit_sink",
    "set_audit_sink",
]
