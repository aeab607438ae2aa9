"""Serialized read-modify-write path for a report's trust fields.

Every trust mutation goes through ``mutate_report``:

1. take the per-report lock (process-local, held only for this block);
2. load the row fresh from the database;
3. apply the caller's change (which may raise a domain error -> rollback);
4. recompute the consensus score and stamp ``updated_at``;
5. commit; the ``version`` column is bumped by SQLAlchemy and guards against
   writers in other processes (``StaleDataError``);
6. publish the change event before releasing the lock, so the per-report
   event order equals the commit order.

Internally issued writes retry a version conflict with exponential backoff.
Writes carrying a caller-supplied ``expected_version`` are never retried:
the caller gets ``OptimisticLockError`` with the current version instead.
No external network call may happen inside ``apply``.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from report_trust.config import MUTATION_RETRY
from report_trust.errors import ConcurrentModificationError, NotFoundError, OptimisticLockError
from report_trust.models.db import Report
from report_trust.models.db.enums import ChangeEventType
from report_trust.services.consensus_scoring import score_report
from report_trust.services.notifier import ChangeNotifier, change_notifier
from report_trust.services.report_views import event_payload
from report_trust.utils import get_logger
from report_trust.utils.backoff import backoff_from_policy
from report_trust.utils.time import utc_now

logger = get_logger(__name__)


class ReportLockRegistry:
    """One mutex per report id; different reports never contend."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def lock_for(self, report_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(report_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[report_id] = lock
            return lock

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


report_locks = ReportLockRegistry()


@dataclass(slots=True)
class MutationResult:
    report: Report
    changed: bool


def load_report(session: Session, report_id: str) -> Report:
    report = session.get(Report, report_id, populate_existing=True)
    if report is None:
        raise NotFoundError(f"Report {report_id} not found", details={"report_id": report_id})
    return report


def mutate_report(
    session: Session,
    report_id: str,
    apply: Callable[[Report], bool],
    *,
    event_type: ChangeEventType = ChangeEventType.REPORT_UPDATED,
    expected_version: Optional[int] = None,
    notifier: Optional[ChangeNotifier] = None,
) -> MutationResult:
    """Run ``apply`` under the report lock and commit it as one version bump.

    ``apply`` receives the freshly loaded row (inside the session transaction)
    and returns True if it changed anything. Returning False rolls back and
    skips the version bump and the event.
    """
    notifier = notifier or change_notifier
    max_attempts = int(MUTATION_RETRY["max_attempts"])
    lock = report_locks.lock_for(report_id)

    for attempt in range(1, max_attempts + 1):
        with lock:
            try:
                report = load_report(session, report_id)
                if expected_version is not None and report.version != expected_version:
                    raise OptimisticLockError(expected_version, report.version)
                changed = apply(report)
                if not changed:
                    session.rollback()
                    return MutationResult(report=load_report(session, report_id), changed=False)
                report.consensus_score = score_report(report)
                report.updated_at = utc_now()
                session.commit()
            except StaleDataError as e:
                session.rollback()
                if expected_version is not None:
                    current = load_report(session, report_id)
                    raise OptimisticLockError(expected_version, current.version) from e
                logger.warning(
                    "Version conflict on report commit; retrying",
                    report_id=report_id,
                    attempt=attempt,
                    error=str(e),
                )
            except Exception:
                session.rollback()
                raise
            else:
                payload = event_payload(report)
                notifier.publish(event_type, payload)
                logger.debug(
                    "Report mutation committed",
                    report_id=report_id,
                    version=payload["version"],
                    event_type=ChangeEventType(event_type).value,
                )
                return MutationResult(report=report, changed=True)
        # back off outside the lock so the competing writer can finish
        time.sleep(backoff_from_policy(attempt, MUTATION_RETRY))

    logger.error("Giving up on report mutation after repeated version conflicts", report_id=report_id, attempts=max_attempts)
    raise ConcurrentModificationError(
        f"Report {report_id} kept changing concurrently; retry later",
        details={"report_id": report_id, "attempts": max_attempts},
    )


__all__ = ["ReportLockRegistry", "report_locks", "MutationResult", "load_report", "mutate_report"]
