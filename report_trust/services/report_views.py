"""Read-side projections of Report rows (API bodies and event payloads)."""
from __future__ import annotations

from typing import Any, Dict

from report_trust.models.db import Report
from report_trust.models.schemas.reports import ReportRead
from report_trust.services.consensus_scoring import trust_tier
from report_trust.services.fake_detection_scoring import risk_level
from report_trust.utils.time import as_utc


def to_report_read(report: Report) -> ReportRead:
    return ReportRead(
        id=report.id,
        user_id=report.user_id,
        title=report.title,
        description=report.description,
        type=report.type,
        severity=report.severity,
        location=report.location,
        latitude=report.latitude,
        longitude=report.longitude,
        media_urls=list(report.media_urls or []),
        upvotes=report.upvotes,
        downvotes=report.downvotes,
        verification_count=report.verification_count,
        consensus_score=report.consensus_score,
        trust_tier=trust_tier(report.consensus_score),
        status=report.status,
        confirmed_by=report.confirmed_by,
        confirmed_at=as_utc(report.confirmed_at) if report.confirmed_at else None,
        ai_validation_score=report.ai_validation_score,
        ai_validation_notes=report.ai_validation_notes,
        fake_detection_score=report.fake_detection_score,
        fake_detection_flags=list(report.fake_detection_flags or []),
        fake_detection_risk=(
            risk_level(report.fake_detection_score).value if report.fake_detection_score is not None else None
        ),
        similar_report_ids=list(report.similar_report_ids or []),
        version=report.version,
        created_at=as_utc(report.created_at),
        updated_at=as_utc(report.updated_at),
    )


def event_payload(report: Report) -> Dict[str, Any]:
    """JSON-safe snapshot published with every change event."""
    return to_report_read(report).model_dump(mode="json")


__all__ = ["to_report_read", "event_payload"]
