"""In-memory audit trail of privileged actions.

Deletions and scans are final in the stores, so this is the only record of who
triggered them during the current process lifetime.
"""
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class AuditEntry:
    actor: str
    action: str
    report_id: Optional[str] = None
    affected: int = 0
    backend: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


_audit_log: deque[AuditEntry] = deque(maxlen=10_000)


def log_action(
    actor: str,
    action: str,
    report_id: Optional[str] = None,
    affected: int = 0,
    backend: Optional[str] = None,
) -> AuditEntry:
    entry = AuditEntry(actor=actor, action=action, report_id=report_id, affected=affected, backend=backend)
    _audit_log.append(entry)
    return entry


def get_audit_log(limit: int = 100, action: Optional[str] = None) -> list[AuditEntry]:
    """Most recent entries first, optionally only one action kind."""
    entries = [e for e in _audit_log if action is None or e.action == action]
    return list(reversed(entries[-limit:]))


def clear_audit_log() -> None:
    _audit_log.clear()
