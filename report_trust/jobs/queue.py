"""In-memory priority + delay queue for trust jobs (single process).

- Lower numeric priority value = dequeued first; FIFO within a priority.
- Optional delay per job (scheduled execution time).
- Capacity limit / backpressure via QUEUE_SETTINGS.
- Pending jobs are de-duplicated by ``job.key()`` when the job defines one, so
  a periodic clustering trigger or a repeated fake-detection request does not
  pile up identical work.

Ready and scheduled items live in separate heaps so a far-future high priority
entry never starves work that is ready now.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
import threading
import time
import heapq

from report_trust.config import QUEUE_SETTINGS
from report_trust.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class QueueItem:
    job: Any
    key: Optional[str]
    priority_label: str
    priority_value: int
    enqueued_at: float
    ready_at: float
    seq: int


def _job_key(job: Any) -> Optional[str]:
    key_fn = getattr(job, "key", None)
    return key_fn() if callable(key_fn) else None


class PriorityDelayQueue:
    def __init__(self) -> None:
        priorities_cfg = QUEUE_SETTINGS.get("priorities", {})  # type: ignore[assignment]
        self._priority_map: dict[str, int] = priorities_cfg if isinstance(priorities_cfg, dict) else {"normal": 5}
        self._warn_depth = int(QUEUE_SETTINGS.get("warn_depth", 1000))  # type: ignore[arg-type]
        self._max_in_memory = int(QUEUE_SETTINGS.get("max_in_memory", 5000))  # type: ignore[arg-type]
        self._lock = threading.RLock()
        self._cv = threading.Condition(self._lock)
        self._ready: list[tuple[int, int, QueueItem]] = []
        self._scheduled: list[tuple[float, int, int, QueueItem]] = []
        self._pending_keys: set[str] = set()
        self._seq = 0
        self._shutdown = False
        self.deduplicated = 0

    def _promote_due(self) -> None:
        now_ts = time.time()
        while self._scheduled and self._scheduled[0][0] <= now_ts:
            _, priority_value, seq, item = heapq.heappop(self._scheduled)
            heapq.heappush(self._ready, (priority_value, seq, item))

    def _wait(self, timeout: Optional[float]) -> None:
        if self._ready:
            return
        if not self._scheduled:
            self._cv.wait(timeout=timeout)
            return
        wait_time = max(0.0, self._scheduled[0][0] - time.time())
        if timeout is not None:
            wait_time = min(wait_time, timeout)
        if wait_time > 0:
            self._cv.wait(timeout=wait_time)

    def enqueue(self, job: Any, *, priority: str = "normal", delay_seconds: float = 0.0) -> Optional[QueueItem]:
        """Queue ``job``. Returns None when an identical job is already pending."""
        with self._lock:
            if self._shutdown:
                raise RuntimeError("Queue shutdown")
            if self.depth() >= self._max_in_memory:
                raise OverflowError("Queue capacity exceeded")
            if priority not in self._priority_map:
                raise ValueError(f"Unknown priority '{priority}'")
            key = _job_key(job)
            if key is not None and key in self._pending_keys:
                self.deduplicated += 1
                logger.debug("Skipping duplicate pending job", key=key)
                return None

            now_ts = time.time()
            self._seq += 1
            item = QueueItem(
                job=job,
                key=key,
                priority_label=priority,
                priority_value=self._priority_map[priority],
                enqueued_at=now_ts,
                ready_at=now_ts + max(0.0, delay_seconds),
                seq=self._seq,
            )
            if item.ready_at <= now_ts:
                heapq.heappush(self._ready, (item.priority_value, item.seq, item))
            else:
                heapq.heappush(self._scheduled, (item.ready_at, item.priority_value, item.seq, item))
            if key is not None:
                self._pending_keys.add(key)
            if self.depth() >= self._warn_depth:
                logger.warning("Queue depth warning", depth=self.depth())
            self._cv.notify()
            return item

    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any:
        """Pop the next ready job; None if non-blocking and empty, on timeout, or after shutdown drains."""
        end_time = None if timeout is None else time.time() + timeout
        with self._lock:
            while True:
                if self._shutdown and not self._ready and not self._scheduled:
                    return None
                self._promote_due()
                if self._ready:
                    _, _, item = heapq.heappop(self._ready)
                    if item.key is not None:
                        self._pending_keys.discard(item.key)
                    return item.job
                if not block:
                    return None
                remaining = None if end_time is None else max(0.0, end_time - time.time())
                if remaining == 0:
                    return None
                self._wait(remaining)

    def shutdown(self) -> None:
        with self._lock:
            self._shutdown = True
            self._cv.notify_all()

    def purge(self) -> None:
        """Drop every pending job (test isolation)."""
        with self._lock:
            self._ready.clear()
            self._scheduled.clear()
            self._pending_keys.clear()
            self._cv.notify_all()

    def depth(self) -> int:
        return len(self._ready) + len(self._scheduled)

    def __len__(self) -> int:  # pragma: no cover
        return self.depth()

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "depth": self.depth(),
                "ready": len(self._ready),
                "scheduled": len(self._scheduled),
                "deduplicated": self.deduplicated,
                "shutdown": self._shutdown,
            }


__all__ = ["PriorityDelayQueue", "QueueItem"]
