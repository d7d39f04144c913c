"""Parent action history kept alongside the ledger."""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from .clock import Clock, utcnow


@dataclass(frozen=True, slots=True)
class AuditEvent:
    """One privileged change, e.g. a rate update or an early withdrawal."""

    action: str
    target: str
    actor: str
    timestamp: datetime
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


class AuditLog:
    """Bounded, newest-last record of parent actions."""

    def __init__(self, *, clock: Optional[Clock] = None, limit: int = 200) -> None:
        self._clock: Clock = clock or utcnow
        self._events: Deque[AuditEvent] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._events)

    def record(
        self,
        action: str,
        target: str,
        *,
        actor: str = "parent",
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            action=action,
            target=target,
            actor=actor,
            timestamp=self._clock(),
            details=dict(details or {}),
        )
        self._events.append(event)
        return event

    def entries(self, action: Optional[str] = None) -> List[AuditEvent]:
        if action is None:
            return list(self._events)
        return [event for event in self._events if event.action == action]

    def latest(self) -> Optional[AuditEvent]:
        return self._events[-1] if self._events else None

    def export(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent ``limit`` events, newest first, ready for JSON."""

        recent = list(self._events)[-limit:] if limit > 0 else []
        return [event.to_dict() for event in reversed(recent)]


__all__ = ["AuditEvent", "AuditLog"]
