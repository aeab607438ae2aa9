"""Fake-detection orchestrator.

1. Snapshot the report's content (no lock held).
2. Gather analyzer output: an explicit payload, the built-in text analyzer,
   and the external image analyzer, bounded by ``analyzer_timeout_seconds``.
3. Look up reporter patterns.
4. Aggregate and write score + flags under the report lock.

Any analyzer failure (timeout, transport error, malformed payload) leaves
``fake_detection_score`` null and the flags empty; it never propagates.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from report_trust.config import FAKE_DETECTION_SETTINGS
from report_trust.errors import AnalyzerError
from report_trust.models.db import Report, ReportCluster
from report_trust.models.db.enums import ChangeEventType, ReportType, Severity
from report_trust.models.schemas.fake_detection import AnalyzerPayload, ImageMetadata, TextAnalysis
from report_trust.services.analyzer_client import ImageAnalyzerClient
from report_trust.services.fake_detection_scoring import (
    ReporterSignals,
    aggregate_fake_signals,
    derive_image_facts,
)
from report_trust.services.notifier import ChangeNotifier
from report_trust.services.report_mutation import load_report, mutate_report
from report_trust.services.text_analysis import analyze_text
from report_trust.utils import get_logger
from report_trust.utils.time import as_utc

logger = get_logger(__name__)


@dataclass(slots=True)
class ReportSnapshot:
    id: str
    user_id: Optional[str]
    title: str
    description: str
    type: ReportType
    severity: Severity
    latitude: Optional[float]
    longitude: Optional[float]
    media_urls: List[str]
    created_at: datetime


@dataclass(slots=True)
class AnalysisBundle:
    text: TextAnalysis
    images: List[ImageMetadata] = field(default_factory=list)


@dataclass(slots=True)
class FakeDetectionRun:
    report: Report
    score: Optional[int]
    flags: List[str]
    analyzer_error: Optional[str]
    changed: bool


def snapshot_report(report: Report) -> ReportSnapshot:
    return ReportSnapshot(
        id=report.id,
        user_id=report.user_id,
        title=report.title,
        description=report.description,
        type=ReportType(report.type),
        severity=Severity(report.severity),
        latitude=report.latitude,
        longitude=report.longitude,
        media_urls=list(report.media_urls or []),
        created_at=as_utc(report.created_at),
    )


async def gather_analysis(
    snapshot: ReportSnapshot,
    payload: Optional[dict[str, Any]] = None,
    client: Optional[ImageAnalyzerClient] = None,
) -> AnalysisBundle:
    """Collect analyzer output; explicit payload sections win over the built-in analyzers."""
    explicit = AnalyzerPayload()
    if payload is not None:
        try:
            explicit = AnalyzerPayload.model_validate(payload)
        except PydanticValidationError as e:
            raise AnalyzerError("Malformed analyzer payload") from e

    text = explicit.text_analysis or analyze_text(snapshot.title, snapshot.description, snapshot.type)
    if explicit.images is not None:
        images = list(explicit.images)
    else:
        client = client or ImageAnalyzerClient()
        images = await client.analyze(snapshot.media_urls, latitude=snapshot.latitude, longitude=snapshot.longitude)
    return AnalysisBundle(text=text, images=images)


def reporter_signals(session: Session, snapshot: ReportSnapshot) -> ReporterSignals:
    if snapshot.user_id is None:
        return ReporterSignals()
    others = session.query(Report.created_at).filter(
        Report.user_id == snapshot.user_id,
        Report.id != snapshot.id,
    ).all()
    window = timedelta(hours=float(FAKE_DETECTION_SETTINGS["burst_window_hours"]))  # type: ignore[arg-type]
    prior = [as_utc(row[0]) for row in others if as_utc(row[0]) <= snapshot.created_at]
    in_window = [ts for ts in prior if snapshot.created_at - ts < window]
    return ReporterSignals(is_new_reporter=not prior, reports_last_window=len(in_window))


def cluster_confidence(session: Session, similar_report_ids: List[str]) -> Optional[float]:
    if not similar_report_ids:
        return None
    rows = session.query(ReportCluster.confidence).filter(
        ReportCluster.primary_report_id.in_(similar_report_ids)
    ).all()
    return max((float(r[0]) for r in rows), default=None)


async def run_fake_detection(
    session: Session,
    report_id: str,
    payload: Optional[dict[str, Any]] = None,
    *,
    client: Optional[ImageAnalyzerClient] = None,
    notifier: Optional[ChangeNotifier] = None,
) -> FakeDetectionRun:
    snapshot = snapshot_report(load_report(session, report_id))
    # end the read transaction before awaiting the network
    session.rollback()
    timeout = float(FAKE_DETECTION_SETTINGS["analyzer_timeout_seconds"])  # type: ignore[arg-type]

    bundle: Optional[AnalysisBundle] = None
    analyzer_error: Optional[str] = None
    try:
        bundle = await asyncio.wait_for(gather_analysis(snapshot, payload, client), timeout=timeout)
    except asyncio.TimeoutError:
        analyzer_error = f"Analyzer timed out after {timeout}s"
    except AnalyzerError as e:
        analyzer_error = e.message
    if analyzer_error:
        logger.warning("Fake detection degraded; score left null", report_id=report_id, error=analyzer_error)

    reporter = await asyncio.to_thread(reporter_signals, session, snapshot)
    computed: dict[str, Any] = {}

    def apply(report: Report) -> bool:
        if bundle is None:
            score, flags = None, []
        else:
            images = [derive_image_facts(i, report.latitude, report.longitude) for i in bundle.images]
            similar = list(report.similar_report_ids or [])
            outcome = aggregate_fake_signals(
                bundle.text,
                images,
                similar_report_ids=similar,
                cluster_confidence=cluster_confidence(session, similar),
                severity=Severity(report.severity).value,
                reporter=reporter,
            )
            score, flags = outcome.score, outcome.flags
        computed.update(score=score, flags=flags)
        if report.fake_detection_score == score and list(report.fake_detection_flags or []) == flags:
            return False
        report.fake_detection_score = score
        report.fake_detection_flags = flags
        return True

    # the report lock and commit retries block; keep them off the event loop
    result = await asyncio.to_thread(
        mutate_report, session, report_id, apply, event_type=ChangeEventType.REPORT_UPDATED, notifier=notifier
    )
    logger.info(
        "Fake detection completed",
        report_id=report_id,
        score=computed.get("score"),
        flags=computed.get("flags"),
        changed=result.changed,
        degraded=analyzer_error is not None,
    )
    return FakeDetectionRun(
        report=result.report,
        score=computed.get("score"),
        flags=list(computed.get("flags") or []),
        analyzer_error=analyzer_error,
        changed=result.changed,
    )


__all__ = [
    "ReportSnapshot",
    "AnalysisBundle",
    "FakeDetectionRun",
    "snapshot_report",
    "gather_analysis",
    "reporter_signals",
    "cluster_confidence",
    "run_fake_detection",
]
