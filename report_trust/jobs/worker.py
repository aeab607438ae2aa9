"""Background worker and scheduler for trust jobs.

``TrustWorker`` drains the job queue on a daemon thread: fake-detection jobs
run the async orchestrator on a private event loop, clustering jobs run a full
clustering pass that is cancelled if the worker is asked to stop mid-run.
``ClusteringScheduler`` enqueues a clustering job every
``CLUSTERING_SETTINGS["interval_seconds"]`` (disabled when 0).
"""
from __future__ import annotations

import asyncio
import threading
import time
from collections import deque
from typing import Any, Optional, Protocol, Union

from sqlalchemy.orm import Session

from report_trust.config import CLUSTERING_SETTINGS
from report_trust.database import SessionLocal
from report_trust.errors import ClusteringCancelledError, ClusteringInProgressError, NotFoundError
from report_trust.jobs.queue import PriorityDelayQueue
from report_trust.jobs.trust_jobs import ClusteringJob, FakeDetectionJob
from report_trust.services.clustering import run_clustering
from report_trust.services.fake_detection import run_fake_detection
from report_trust.utils import get_logger

logger = get_logger(__name__)

# Debug instrumentation store (test visibility); oldest entries fall off
LAST_EXCEPTIONS_LIMIT = 100
LAST_EXCEPTIONS: deque[dict] = deque(maxlen=LAST_EXCEPTIONS_LIMIT)


class QueueProtocol(Protocol):
    def enqueue(self, job: Any, *, priority: str = "normal", delay_seconds: float = 0.0) -> Any: ...
    def dequeue(self, *, block: bool = True, timeout: Optional[float] = None) -> Any: ...
    def shutdown(self) -> None: ...
    def snapshot(self) -> dict: ...


class TrustWorker:
    def __init__(self, queue: QueueProtocol, *, poll_timeout: float = 5.0):
        self.queue = queue
        self.poll_timeout = poll_timeout
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self.processed = 0

    def start(self) -> None:
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="trust-worker", daemon=True)
        self._thread.start()
        logger.info("Trust worker started")

    def stop(self) -> None:
        self._stop_event.set()
        logger.info("Trust worker stop requested")

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                job = self.queue.dequeue(timeout=self.poll_timeout)
                if job is None:
                    continue
                self._process(job)
            except Exception as e:  # pragma: no cover - defensive
                logger.error("Worker loop error", error=str(e), exc_info=True)
                time.sleep(1)

    def _process(self, job: Union[FakeDetectionJob, ClusteringJob, Any]) -> None:
        if isinstance(job, FakeDetectionJob):
            handler, label = self._run_fake_detection, f"fake_detection:{job.report_id}"
        elif isinstance(job, ClusteringJob):
            handler, label = self._run_clustering, "clustering"
        else:
            logger.warning("Skipping unknown job type", job_type=type(job).__name__)
            return

        session: Session = SessionLocal()
        try:
            handler(session, job)
        except Exception as e:
            logger.error("Trust job failed", job=label, error=str(e), exc_info=True)
            LAST_EXCEPTIONS.append({"job": label, "error": str(e), "type": type(e).__name__})
        finally:
            session.close()
            self.processed += 1

    def _run_fake_detection(self, session: Session, job: FakeDetectionJob) -> None:
        logger.info("Processing fake detection job", report_id=job.report_id)
        try:
            run = asyncio.run(run_fake_detection(session, job.report_id, job.payload))
        except NotFoundError:
            logger.warning("Fake detection skipped; report no longer exists", report_id=job.report_id)
            return
        logger.info("Fake detection job completed", report_id=job.report_id, score=run.score, changed=run.changed)

    def _run_clustering(self, session: Session, job: ClusteringJob) -> None:
        logger.info("Processing clustering job", limit=job.limit)
        try:
            run = run_clustering(session, job.limit, cancel_event=self._stop_event)
        except ClusteringInProgressError:
            logger.info("Clustering job skipped; another run is active")
            return
        except ClusteringCancelledError:
            logger.warning("Clustering job cancelled by worker shutdown")
            return
        logger.info("Clustering job completed", run_id=run.run_id, clusters_found=len(run.clusters))


class ClusteringScheduler:
    """Periodically enqueue clustering runs."""

    def __init__(self, queue: QueueProtocol, interval_seconds: Optional[float] = None, *, limit: Optional[int] = None):
        self.queue = queue
        self.interval_seconds = float(
            interval_seconds if interval_seconds is not None else CLUSTERING_SETTINGS["interval_seconds"]  # type: ignore[arg-type]
        )
        self.limit = limit
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    def start(self) -> None:
        if not self.enabled:
            logger.info("Clustering scheduler disabled")
            return
        if self._thread and self._thread.is_alive():  # pragma: no cover
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="clustering-scheduler", daemon=True)
        self._thread.start()
        logger.info("Clustering scheduler started", interval_seconds=self.interval_seconds)

    def stop(self) -> None:
        self._stop_event.set()

    def tick(self) -> bool:
        """Enqueue one clustering run; False when the queue refused it."""
        try:
            item = self.queue.enqueue(ClusteringJob(limit=self.limit), priority="low")
        except (OverflowError, RuntimeError) as e:
            logger.warning("Scheduled clustering not queued", error=str(e))
            return False
        return item is not None

    def _loop(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            self.tick()


def create_queue() -> PriorityDelayQueue:
    logger.info("Using in-memory queue")
    return PriorityDelayQueue()


__all__ = ["TrustWorker", "ClusteringScheduler", "LAST_EXCEPTIONS", "LAST_EXCEPTIONS_LIMIT", "create_queue"]
