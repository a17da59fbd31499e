"""Best-effort audit trail recording.

Audit writes must never block or fail the signing workflow, so
:meth:`AuditLog.log_event` swallows every error after logging it at debug
level.
"""

import logging
from typing import Any, Optional

from .models import AuditEvent, AuditLogEntry
from .store import RecordStore

logger = logging.getLogger("utilsign.audit")


class AuditLog:
    """Writes :class:`AuditLogEntry` rows through a record store."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def log_event(
        self,
        document_id: str,
        actor_email: str,
        event: AuditEvent,
        *,
        signer_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Record one event. Never raises."""
        try:
            self._store.append_audit(
                AuditLogEntry(
                    document_id=document_id,
                    signer_id=signer_id,
                    actor_email=actor_email,
                    event_type=event,
                    metadata=metadata or {},
                )
            )
        except Exception as exc:
            logger.debug("Dropped audit event %s for %s: %s", event, document_id, exc)
