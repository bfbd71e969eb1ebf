"""
Audit logging for reconciliation runs.
"""

from collections import Counter
from typing import List, Optional

import structlog

from ..models import AuditAction, AuditEntry

logger = structlog.get_logger()


class AuditLogger:
    """
    In-memory audit trail for a single run, mirrored to structlog.
    The trail is handed to the report; nothing is written to disk.
    """

    def __init__(self, tenant_id: Optional[str] = None):
        self.tenant_id = tenant_id
        self.entries: List[AuditEntry] = []
        self._log = logger.bind(tenant_id=tenant_id) if tenant_id else logger

    def log(self, entry: AuditEntry) -> None:
        """Add an audit entry."""
        self.entries.append(entry)

        self._log.info(
            entry.message,
            action=entry.action.value,
            success=entry.success,
            **entry.details,
        )

    def record(
        self,
        action: AuditAction,
        message: str,
        success: bool = True,
        **details,
    ) -> AuditEntry:
        """Build and log an entry in one call."""
        entry = AuditEntry(action=action, message=message, details=details, success=success)
        self.log(entry)
        return entry

    def get_entries(
        self,
        action_filter: Optional[AuditAction] = None,
        success_only: bool = False,
    ) -> List[AuditEntry]:
        """Get filtered audit entries."""
        entries = self.entries

        if action_filter:
            entries = [e for e in entries if e.action == action_filter]

        if success_only:
            entries = [e for e in entries if e.success]

        return entries

    def summary(self) -> dict:
        """Get summary statistics of audit log."""
        action_counts = Counter(e.action.value for e in self.entries)
        success_count = sum(1 for e in self.entries if e.success)

        return {
            "total_entries": len(self.entries),
            "success_count": success_count,
            "error_count": len(self.entries) - success_count,
            "action_counts": dict(action_counts),
        }
