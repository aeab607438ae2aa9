"""Duplicate report clustering.

Heuristic pairwise similarity over a recent snapshot of reports, grouped with a
greedy single pass. The result is a materialized view: each run replaces the
stored cluster set in one transaction, then points every grouped non-primary
report's ``similar_report_ids`` at its primary and clears stale links on the
rest of the snapshot.

Pair score = sum(criterion weight * criterion similarity) / sum(weights of the
criteria that contributed). A pair matches when the score reaches
``match_threshold`` and at least ``min_reasons`` of the four named criteria
(type, location, time, text) contributed. Two located reports farther apart
than ``radius_km`` never match; the location weight counts with similarity 0.
"""
from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from difflib import SequenceMatcher
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from report_trust.config import CLUSTERING_SETTINGS
from report_trust.errors import (
    ClusteringCancelledError,
    ClusteringInProgressError,
    NotFoundError,
    ValidationError,
)
from report_trust.models.db import Report, ReportCluster
from report_trust.models.db.enums import ChangeEventType
from report_trust.services.notifier import ChangeNotifier
from report_trust.services.report_mutation import mutate_report
from report_trust.utils import get_logger, log_business_event, log_performance
from report_trust.utils.geo import haversine_km
from report_trust.utils.time import as_utc, format_elapsed, hours_between, utc_now

logger = get_logger(__name__)

REASON_TYPE = "same type"
REASON_LOCATION = "same location radius"
REASON_TIME = "overlapping time window"
REASON_TEXT = "similar description"
CANONICAL_REASONS = (REASON_TYPE, REASON_LOCATION, REASON_TIME, REASON_TEXT)

_run_lock = threading.Lock()


@dataclass(slots=True)
class ClusterCandidate:
    id: str
    title: str
    description: str
    type: str
    severity: str
    latitude: Optional[float]
    longitude: Optional[float]
    created_at: datetime
    verification_count: int


@dataclass(slots=True)
class PairSimilarity:
    score: float
    reasons: List[str] = field(default_factory=list)
    out_of_radius: bool = False

    @property
    def is_match(self) -> bool:
        return (
            not self.out_of_radius
            and self.score >= float(CLUSTERING_SETTINGS["match_threshold"])  # type: ignore[arg-type]
            and len(self.reasons) >= int(CLUSTERING_SETTINGS["min_reasons"])  # type: ignore[arg-type]
        )


@dataclass(slots=True)
class ClusterGroup:
    primary_report_id: str
    related_report_ids: List[str]
    confidence: float
    reasons: List[str]

    @property
    def size(self) -> int:
        return 1 + len(self.related_report_ids)


@dataclass(slots=True)
class ClusteringRun:
    run_id: str
    clusters: List[ClusterGroup]
    reports_analyzed: int
    reports_updated: int


# ------------------------------ similarity ------------------------------ #
def text_similarity(a: str, b: str) -> float:
    """Word Jaccard (0.6) blended with character sequence ratio (0.4)."""
    left = (a or "").lower().strip()
    right = (b or "").lower().strip()
    if left == right:
        return 1.0
    if not left or not right:
        return 0.0
    words_left, words_right = set(left.split()), set(right.split())
    union = words_left | words_right
    jaccard = len(words_left & words_right) / len(union) if union else 0.0
    ratio = SequenceMatcher(None, left, right).ratio()
    return jaccard * 0.6 + ratio * 0.4


def time_similarity(a: datetime, b: datetime) -> float:
    window = float(CLUSTERING_SETTINGS["window_hours"])  # type: ignore[arg-type]
    diff = hours_between(a, b)
    if diff > window:
        return 0.0
    return 1.0 - diff / window


def pair_similarity(a: ClusterCandidate, b: ClusterCandidate) -> PairSimilarity:
    weights: Dict[str, float] = CLUSTERING_SETTINGS["weights"]  # type: ignore[assignment]
    total = 0.0
    weight_sum = 0.0
    reasons: set[str] = set()
    out_of_radius = False

    def contribute(criterion: str, similarity: float, reason: Optional[str]) -> None:
        nonlocal total, weight_sum
        total += similarity * weights[criterion]
        weight_sum += weights[criterion]
        if reason:
            reasons.add(reason)

    title_sim = text_similarity(a.title, b.title)
    if title_sim > float(CLUSTERING_SETTINGS["title_similarity_threshold"]):  # type: ignore[arg-type]
        contribute("title", title_sim, REASON_TEXT)
    desc_sim = text_similarity(a.description, b.description)
    if desc_sim > float(CLUSTERING_SETTINGS["text_similarity_threshold"]):  # type: ignore[arg-type]
        contribute("description", desc_sim, REASON_TEXT)
    if a.type == b.type:
        contribute("type", 1.0, REASON_TYPE)
    # severity sharpens the score but is not a match reason on its own
    if a.severity == b.severity:
        contribute("severity", 1.0, None)
    if None not in (a.latitude, a.longitude, b.latitude, b.longitude):
        radius = float(CLUSTERING_SETTINGS["radius_km"])  # type: ignore[arg-type]
        distance = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)  # type: ignore[arg-type]
        if distance <= radius:
            contribute("location", 1.0 - distance / radius, REASON_LOCATION)
        else:
            # located too far apart to be the same incident
            contribute("location", 0.0, None)
            out_of_radius = True
    time_sim = time_similarity(a.created_at, b.created_at)
    if time_sim > float(CLUSTERING_SETTINGS["time_similarity_floor"]):  # type: ignore[arg-type]
        contribute("time", time_sim, REASON_TIME)

    score = total / weight_sum if weight_sum else 0.0
    return PairSimilarity(
        score=score,
        reasons=[r for r in CANONICAL_REASONS if r in reasons],
        out_of_radius=out_of_radius,
    )


def choose_primary(members: Sequence[ClusterCandidate]) -> ClusterCandidate:
    """Most verified member; ties go to the earliest report, then the smallest id."""
    return min(members, key=lambda m: (-m.verification_count, m.created_at, m.id))


def mean_pairwise_similarity(members: Sequence[ClusterCandidate]) -> float:
    scores = [
        pair_similarity(members[i], members[j]).score
        for i in range(len(members))
        for j in range(i + 1, len(members))
    ]
    return sum(scores) / len(scores) if scores else 0.0


def group_candidates(
    candidates: Sequence[ClusterCandidate],
    cancel_event: Optional[threading.Event] = None,
) -> List[ClusterGroup]:
    """Greedy single pass in the given (recency) order; singletons are dropped."""
    grouped: set[str] = set()
    groups: List[ClusterGroup] = []
    for seed in candidates:
        if cancel_event is not None and cancel_event.is_set():
            raise ClusteringCancelledError("Clustering run cancelled; partial results discarded")
        if seed.id in grouped:
            continue
        members = [seed]
        reasons: set[str] = set()
        for other in candidates:
            if other.id == seed.id or other.id in grouped:
                continue
            similarity = pair_similarity(seed, other)
            if similarity.is_match:
                members.append(other)
                reasons.update(similarity.reasons)
        if len(members) < 2:
            continue
        grouped.update(m.id for m in members)
        primary = choose_primary(members)
        groups.append(
            ClusterGroup(
                primary_report_id=primary.id,
                related_report_ids=[m.id for m in members if m.id != primary.id],
                confidence=round(mean_pairwise_similarity(members), 4),
                reasons=[r for r in CANONICAL_REASONS if r in reasons],
            )
        )
    # larger clusters first; stable for equal sizes
    groups.sort(key=lambda g: -g.size)
    return groups


# ------------------------------ persistence ------------------------------ #
def _resolve_limit(limit: Optional[int]) -> int:
    if limit is None:
        return int(CLUSTERING_SETTINGS["default_limit"])  # type: ignore[arg-type]
    max_limit = int(CLUSTERING_SETTINGS["max_limit"])  # type: ignore[arg-type]
    if limit < 1 or limit > max_limit:
        raise ValidationError(
            f"limit must be between 1 and {max_limit}",
            details={"limit": limit, "max_limit": max_limit},
        )
    return limit


def snapshot_candidates(session: Session, limit: int) -> List[ClusterCandidate]:
    rows = (
        session.query(Report)
        .order_by(Report.created_at.desc(), Report.id.desc())
        .limit(limit)
        .all()
    )
    return [
        ClusterCandidate(
            id=r.id,
            title=r.title,
            description=r.description,
            type=r.type.value if hasattr(r.type, "value") else str(r.type),
            severity=r.severity.value if hasattr(r.severity, "value") else str(r.severity),
            latitude=r.latitude,
            longitude=r.longitude,
            created_at=as_utc(r.created_at),
            verification_count=r.verification_count or 0,
        )
        for r in rows
    ]


def _replace_clusters(session: Session, run_id: str, groups: Sequence[ClusterGroup]) -> None:
    now = utc_now()
    session.query(ReportCluster).delete(synchronize_session=False)
    session.add_all(
        ReportCluster(
            cluster_id=group.primary_report_id,
            primary_report_id=group.primary_report_id,
            related_report_ids=list(group.related_report_ids),
            confidence=group.confidence,
            reasons=list(group.reasons),
            position=position,
            run_id=run_id,
            created_at=now,
        )
        for position, group in enumerate(groups)
    )


def _link_targets(candidates: Sequence[ClusterCandidate], groups: Sequence[ClusterGroup]) -> Dict[str, List[str]]:
    """Desired ``similar_report_ids`` per snapshot member.

    Related members point at their primary; primaries and ungrouped members are
    cleared so links from an earlier run do not outlive their cluster.
    """
    targets: Dict[str, List[str]] = {}
    for group in groups:
        for report_id in group.related_report_ids:
            targets[report_id] = [group.primary_report_id]
    for candidate in candidates:
        targets.setdefault(candidate.id, [])
    return targets


def _link_to_primary(
    session: Session,
    targets: Dict[str, List[str]],
    notifier: Optional[ChangeNotifier],
) -> int:
    updated = 0
    for report_id, target in targets.items():

        def apply(report: Report, target: List[str] = target) -> bool:
            if list(report.similar_report_ids or []) == target:
                return False
            report.similar_report_ids = list(target)
            return True

        try:
            result = mutate_report(
                session, report_id, apply, event_type=ChangeEventType.REPORT_UPDATED, notifier=notifier
            )
        except NotFoundError:
            # removed since the snapshot; the next run will not see it
            logger.warning("Clustered report disappeared before linking", report_id=report_id)
            continue
        if result.changed:
            updated += 1
    return updated


def run_clustering(
    session: Session,
    limit: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> ClusteringRun:
    """Recompute the duplicate cluster set from the ``limit`` most recent reports.

    Raises ``ClusteringInProgressError`` when another run holds the run lock and
    ``ClusteringCancelledError`` if ``cancel_event`` fires before the commit.
    """
    resolved_limit = _resolve_limit(limit)
    if not _run_lock.acquire(blocking=False):
        raise ClusteringInProgressError("A clustering run is already in progress")

    started = utc_now()
    start_time = time.time()
    run_id = str(uuid.uuid4())
    try:
        logger.info("Clustering run started", run_id=run_id, limit=resolved_limit)
        candidates = snapshot_candidates(session, resolved_limit)
        groups = group_candidates(candidates, cancel_event)

        if cancel_event is not None and cancel_event.is_set():
            raise ClusteringCancelledError("Clustering run cancelled; partial results discarded")
        try:
            _replace_clusters(session, run_id, groups)
            session.commit()
        except Exception:
            session.rollback()
            raise

        reports_updated = _link_to_primary(session, _link_targets(candidates, groups), notifier)
    except ClusteringCancelledError:
        session.rollback()
        logger.warning("Clustering run cancelled", run_id=run_id, elapsed=format_elapsed(started))
        raise
    finally:
        _run_lock.release()

    run = ClusteringRun(
        run_id=run_id,
        clusters=groups,
        reports_analyzed=len(candidates),
        reports_updated=reports_updated,
    )
    log_business_event(
        "clustering_run_completed",
        {
            "run_id": run_id,
            "clusters_found": len(groups),
            "reports_analyzed": run.reports_analyzed,
            "reports_updated": reports_updated,
        },
    )
    log_performance("clustering_run", (time.time() - start_time) * 1000, {"reports_analyzed": run.reports_analyzed})
    logger.info(
        "Clustering run completed",
        run_id=run_id,
        clusters_found=len(groups),
        reports_analyzed=run.reports_analyzed,
        elapsed=format_elapsed(started),
    )
    return run


def is_running() -> bool:
    return _run_lock.locked()


def list_clusters(session: Session) -> Dict[str, Any]:
    clusters = session.query(ReportCluster).order_by(ReportCluster.position.asc()).all()
    return {
        "clusters": clusters,
        "total_clusters": len(clusters),
        "total_reports_in_clusters": sum(1 + len(c.related_report_ids or []) for c in clusters),
    }


__all__ = [
    "CANONICAL_REASONS",
    "ClusterCandidate",
    "PairSimilarity",
    "ClusterGroup",
    "ClusteringRun",
    "text_similarity",
    "time_similarity",
    "pair_similarity",
    "choose_primary",
    "mean_pairwise_similarity",
    "group_candidates",
    "snapshot_candidates",
    "run_clustering",
    "is_running",
    "list_clusters",
]
