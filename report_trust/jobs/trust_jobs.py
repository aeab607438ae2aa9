"""Background job payloads for the trust worker."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(slots=True)
class FakeDetectionJob:
    report_id: str
    payload: Optional[dict[str, Any]] = None  # explicit analyzer output, if a caller already has it
    priority: str = "normal"
    correlation_id: Optional[str] = None

    def key(self) -> str:
        return f"fake:{self.report_id}"


@dataclass(slots=True)
class ClusteringJob:
    limit: Optional[int] = None
    priority: str = "low"
    correlation_id: Optional[str] = None

    def key(self) -> str:
        return f"cluster:{self.limit or 'default'}"


__all__ = ["FakeDetectionJob", "ClusteringJob"]
