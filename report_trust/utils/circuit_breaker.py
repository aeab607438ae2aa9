"""In-memory circuit breaker for external analyzers (process-local)."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict

from report_trust.config import CIRCUIT_BREAKER


@dataclass
class BreakerState:
    failures: int = 0
    state: str = "CLOSED"
    opened_at: datetime | None = None
    half_open_probes: int = 0


class CircuitBreaker:
    """Per-analyzer breaker: CLOSED -> OPEN after consecutive failures, HALF_OPEN after cooldown."""

    def __init__(self):
        self._states: Dict[str, BreakerState] = {}
        self._lock = threading.Lock()

    def _get(self, analyzer: str) -> BreakerState:
        return self._states.setdefault(analyzer, BreakerState())

    def allow_call(self, analyzer: str) -> tuple[bool, str | None]:
        with self._lock:
            st = self._get(analyzer)
            if st.state == "CLOSED":
                return True, None
            if st.state == "OPEN":
                cooldown = CIRCUIT_BREAKER["open_cooldown_seconds"]  # type: ignore[index]
                if st.opened_at and datetime.now(timezone.utc) - st.opened_at >= timedelta(seconds=cooldown):
                    st.state = "HALF_OPEN"
                    st.half_open_probes = 0
                else:
                    return False, "circuit_open"
            if st.state == "HALF_OPEN":
                probe_limit = CIRCUIT_BREAKER["half_open_probe_count"]  # type: ignore[index]
                if st.half_open_probes >= probe_limit:  # type: ignore[arg-type]
                    return False, "half_open_probe_exhausted"
                st.half_open_probes += 1
                return True, None
            return True, None

    def record_success(self, analyzer: str) -> None:
        with self._lock:
            st = self._get(analyzer)
            st.failures = 0
            if st.state in {"OPEN", "HALF_OPEN"}:
                st.state = "CLOSED"
                st.opened_at = None
                st.half_open_probes = 0

    def record_failure(self, analyzer: str) -> None:
        with self._lock:
            st = self._get(analyzer)
            st.failures += 1
            threshold = CIRCUIT_BREAKER["failure_threshold"]  # type: ignore[index]
            if st.state == "CLOSED" and st.failures >= threshold:  # type: ignore[arg-type]
                st.state = "OPEN"
                st.opened_at = datetime.now(timezone.utc)
            elif st.state == "HALF_OPEN":
                st.state = "OPEN"
                st.opened_at = datetime.now(timezone.utc)

    def reset(self) -> None:
        with self._lock:
            self._states.clear()

    def snapshot(self) -> dict[str, dict[str, object]]:
        with self._lock:
            return {
                k: {
                    "failures": v.failures,
                    "state": v.state,
                    "opened_at": v.opened_at.isoformat() if v.opened_at else None,
                    "half_open_probes": v.half_open_probes,
                }
                for k, v in self._states.items()
            }


GLOBAL_CIRCUIT_BREAKER = CircuitBreaker()

__all__ = ["CircuitBreaker", "GLOBAL_CIRCUIT_BREAKER"]
