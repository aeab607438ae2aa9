"""Report intake and read paths.

Creation is the only place a Report row is inserted; every later change to its
trust fields goes through ``report_mutation``.
"""
from __future__ import annotations

from typing import Any, List, Optional, Tuple

from sqlalchemy.orm import Session

from report_trust.errors import NotFoundError, ValidationError
from report_trust.jobs.trust_jobs import FakeDetectionJob
from report_trust.models.db import Report, User
from report_trust.models.db.enums import ChangeEventType, ReportStatus, ReportType, Severity
from report_trust.models.schemas.reports import ReportCreate
from report_trust.services.consensus_scoring import score_report
from report_trust.services.notifier import ChangeNotifier, change_notifier
from report_trust.services.report_mutation import load_report, mutate_report
from report_trust.services.report_views import event_payload
from report_trust.utils import get_logger, log_business_event
from report_trust.utils.time import utc_now

logger = get_logger(__name__)


def _parse_filter(enum_cls, value: Optional[str], field: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(
            f"Invalid {field} '{value}'. Expected one of: {[v.value for v in enum_cls]}",
            details={"field": field},
        )


def create_report(
    session: Session,
    data: ReportCreate,
    user_id: Optional[str] = None,
    *,
    queue: Any = None,
    notifier: Optional[ChangeNotifier] = None,
) -> Report:
    """Insert a new report with neutral trust state and announce it.

    When a job queue is given, fake detection is scheduled for the new report;
    submission never waits for it.
    """
    notifier = notifier or change_notifier
    if user_id is not None and session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

    now = utc_now()
    report = Report(
        user_id=user_id,
        title=data.title,
        description=data.description,
        type=data.type,
        severity=data.severity,
        location=data.location,
        latitude=data.latitude,
        longitude=data.longitude,
        media_urls=list(data.media_urls),
        upvotes=0,
        downvotes=0,
        verification_count=0,
        status=ReportStatus.REPORTED,
        confirmed_by=None,
        confirmed_at=None,
        ai_validation_score=None,
        fake_detection_score=None,
        fake_detection_flags=[],
        similar_report_ids=[],
        created_at=now,
        updated_at=now,
    )
    report.consensus_score = score_report(report)
    session.add(report)
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise
    session.refresh(report)

    notifier.publish(ChangeEventType.NEW_REPORT, event_payload(report))
    log_business_event(
        "report_created",
        {"report_id": report.id, "type": report.type.value, "severity": report.severity.value},
        user_id=user_id,
    )

    if queue is not None:
        try:
            queue.enqueue(FakeDetectionJob(report_id=report.id), priority="normal")
        except (OverflowError, RuntimeError) as e:
            # annotation is best effort; the report stays with a null score
            logger.warning("Fake detection not queued", report_id=report.id, error=str(e))
    return report


def get_report(session: Session, report_id: str) -> Report:
    return load_report(session, report_id)


def list_reports(
    session: Session,
    *,
    status: Optional[str] = None,
    report_type: Optional[str] = None,
    severity: Optional[str] = None,
    skip: int = 0,
    limit: int = 50,
) -> Tuple[List[Report], int]:
    """Newest first. Returns (page, total matching)."""
    query = session.query(Report)
    status_value = _parse_filter(ReportStatus, status, "status")
    if status_value is not None:
        query = query.filter(Report.status == status_value)
    type_value = _parse_filter(ReportType, report_type, "type")
    if type_value is not None:
        query = query.filter(Report.type == type_value)
    severity_value = _parse_filter(Severity, severity, "severity")
    if severity_value is not None:
        query = query.filter(Report.severity == severity_value)

    total = query.count()
    items = query.order_by(Report.created_at.desc(), Report.id.desc()).offset(skip).limit(limit).all()
    return items, total


def apply_ai_validation(
    session: Session,
    report_id: str,
    score: float,
    notes: Optional[str] = None,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> Report:
    """Store the external classifier's score (0-100) and recompute consensus."""
    if score is None or not 0 <= score <= 100:
        raise ValidationError("AI validation score must be between 0 and 100", details={"field": "score"})

    def apply(report: Report) -> bool:
        if report.ai_validation_score == score and report.ai_validation_notes == notes:
            return False
        report.ai_validation_score = float(score)
        report.ai_validation_notes = notes
        return True

    result = mutate_report(session, report_id, apply, event_type=ChangeEventType.REPORT_UPDATED, notifier=notifier)
    if result.changed:
        log_business_event("ai_validation_applied", {"report_id": report_id, "score": score})
    return result.report


__all__ = ["create_report", "get_report", "list_reports", "apply_ai_validation"]
