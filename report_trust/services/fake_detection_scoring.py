"""Fake-detection score aggregation (pure).

Turns already-gathered analyzer output plus report context into a 0-100
suspicion score and a sorted set of flags. Weights live in
``FAKE_DETECTION_SETTINGS["weights"]``; each flag contributes once per
occurrence (image flags once per offending image) and the total is capped.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from report_trust.config import FAKE_DETECTION_SETTINGS
from report_trust.models.db.enums import RiskLevel
from report_trust.models.schemas.fake_detection import ImageMetadata, TextAnalysis
from report_trust.utils.geo import haversine_km
from report_trust.utils.time import as_utc, utc_now


@dataclass(slots=True)
class ReporterSignals:
    is_new_reporter: bool = False
    reports_last_window: int = 0


@dataclass(slots=True)
class FakeDetectionOutcome:
    score: int
    flags: list[str] = field(default_factory=list)

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level(self.score)


def _weight(flag: str) -> int:
    weights = FAKE_DETECTION_SETTINGS["weights"]  # type: ignore[index]
    return int(weights.get(flag, 0))  # type: ignore[union-attr]


def risk_level(score: int) -> RiskLevel:
    tiers = FAKE_DETECTION_SETTINGS["risk_tiers"]  # type: ignore[index]
    for name, lower_bound in sorted(tiers.items(), key=lambda kv: kv[1], reverse=True):  # type: ignore[union-attr]
        if score >= lower_bound:
            return RiskLevel(name)
    return RiskLevel.LOW


def is_editing_software(software: Optional[str]) -> bool:
    if not software:
        return False
    lowered = software.lower()
    return any(tool in lowered for tool in FAKE_DETECTION_SETTINGS["editing_software"])  # type: ignore[union-attr]


def derive_image_facts(
    image: ImageMetadata,
    latitude: Optional[float],
    longitude: Optional[float],
    now: Optional[datetime] = None,
) -> ImageMetadata:
    """Fill gps_matches_location / timestamp_recent from raw fields when the analyzer left them unset."""
    updates: dict[str, bool] = {}
    if (
        image.gps_matches_location is None
        and image.gps_latitude is not None
        and image.gps_longitude is not None
        and latitude is not None
        and longitude is not None
    ):
        distance = haversine_km(latitude, longitude, image.gps_latitude, image.gps_longitude)
        updates["gps_matches_location"] = distance < float(FAKE_DETECTION_SETTINGS["gps_match_radius_km"])  # type: ignore[arg-type]
    if image.timestamp_recent is None and image.captured_at is not None:
        age_days = ((now or utc_now()) - as_utc(image.captured_at)).total_seconds() / 86400.0
        updates["timestamp_recent"] = age_days < float(FAKE_DETECTION_SETTINGS["recent_capture_days"])  # type: ignore[arg-type]
    return image.model_copy(update=updates) if updates else image


def aggregate_fake_signals(
    text: TextAnalysis,
    images: Sequence[ImageMetadata],
    *,
    similar_report_ids: Iterable[str] = (),
    cluster_confidence: Optional[float] = None,
    severity: Optional[str] = None,
    reporter: Optional[ReporterSignals] = None,
) -> FakeDetectionOutcome:
    score = 0
    flags: set[str] = set()

    def hit(flag: str) -> None:
        nonlocal score
        score += _weight(flag)
        flags.add(flag)

    if text.has_spam_patterns:
        hit("spam_pattern")
    if text.has_excessive_caps:
        hit("excessive_caps")
    if text.has_repeated_text:
        hit("repeated_text")
    if text.consistency_score < float(FAKE_DETECTION_SETTINGS["low_consistency_threshold"]):  # type: ignore[arg-type]
        hit("low_consistency")

    for image in images:
        if not image.has_exif:
            hit("missing_metadata")
        if image.gps_matches_location is False:
            hit("gps_mismatch")
        if image.timestamp_recent is False:
            hit("stale_timestamp")
        if is_editing_software(image.software):
            hit("edited_image")

    if list(similar_report_ids):
        hit("similar_reports")
        threshold = float(FAKE_DETECTION_SETTINGS["duplicate_confidence_threshold"])  # type: ignore[arg-type]
        if cluster_confidence is not None and cluster_confidence >= threshold:
            flags.add("duplicate_content")

    if reporter is not None:
        if reporter.is_new_reporter and severity == "critical":
            hit("new_user_critical_report")
        if reporter.reports_last_window > int(FAKE_DETECTION_SETTINGS["burst_max_reports"]):  # type: ignore[arg-type]
            hit("burst_submission")

    capped = max(0, min(score, int(FAKE_DETECTION_SETTINGS["max_score"])))  # type: ignore[arg-type]
    return FakeDetectionOutcome(score=capped, flags=sorted(flags))


__all__ = [
    "ReporterSignals",
    "FakeDetectionOutcome",
    "risk_level",
    "is_editing_software",
    "derive_image_facts",
    "aggregate_fake_signals",
]
