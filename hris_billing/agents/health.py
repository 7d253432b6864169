from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from hris_billing.models.base import utcnow


@dataclass(slots=True)
class AgentHealth:
    name: str
    healthy: bool = False
    ready: bool = False
    last_error: str | None = None
    last_success_at: datetime | None = None
    last_run_at: datetime | None = None
    consecutive_failures: int = 0
    metrics: dict[str, int] = field(default_factory=dict)

    def mark_run(self) -> None:
        self.last_run_at = utcnow()

    def mark_success(self, counts: Mapping[str, int] | None = None) -> None:
        for key, value in (counts or {}).items():
            self.metrics[key] = self.metrics.get(key, 0) + value
        self.healthy = True
        self.ready = True
        self.last_error = None
        self.consecutive_failures = 0
        self.last_success_at = utcnow()

    def mark_error(self, error: BaseException) -> None:
        self.healthy = False
        self.consecutive_failures += 1
        self.last_error = str(error) or type(error).__name__

    def payload(self) -> dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "ready": self.ready,
            "last_error": self.last_error,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "consecutive_failures": self.consecutive_failures,
            "metrics": self.metrics,
        }
