from datetime import timedelta

from report_trust.models.db.enums import RiskLevel
from report_trust.models.schemas.fake_detection import ImageMetadata, TextAnalysis
from report_trust.services.fake_detection_scoring import (
    ReporterSignals,
    aggregate_fake_signals,
    derive_image_facts,
    is_editing_software,
    risk_level,
)
from report_trust.services.text_analysis import analyze_text
from report_trust.utils.time import utc_now

CLEAN_TEXT = TextAnalysis(consistency_score=100)


def test_text_analysis_detects_spam_phrases():
    result = analyze_text("FREE MONEY", "Click here for free money now", "fire")
    assert result.has_spam_patterns is True
    assert result.has_excessive_caps is False
    assert "missing_disaster_type_keywords" in result.spam_indicators
    assert result.consistency_score == 60


def test_text_analysis_consistency_deductions():
    result = analyze_text("Help", "help", "fire")
    # missing keywords 40 + short description 20 + short title 15
    assert result.consistency_score == 25
    assert result.has_spam_patterns is False


def test_text_analysis_caps_and_repetition():
    shouting = analyze_text("FIRE EVERYWHERE RUN", "THE WHOLE BLOCK IS BURNING DOWN NOW", "fire")
    assert shouting.has_excessive_caps is True

    repeated = analyze_text("Flood", "flood flood flood flood flood near the river bank today again", "flood")
    assert repeated.has_repeated_text is True
    assert repeated.consistency_score == 100


def test_clean_report_scores_zero():
    outcome = aggregate_fake_signals(CLEAN_TEXT, [])
    assert outcome.score == 0
    assert outcome.flags == []
    assert outcome.risk_level is RiskLevel.LOW


def test_text_flags_accumulate():
    text = TextAnalysis(consistency_score=30, has_spam_patterns=True)
    outcome = aggregate_fake_signals(text, [])
    assert outcome.score == 55
    assert outcome.flags == ["low_consistency", "spam_pattern"]
    assert outcome.risk_level is RiskLevel.HIGH


def test_image_flags_and_cap():
    images = [
        ImageMetadata(has_exif=False),
        ImageMetadata(
            has_exif=True,
            gps_matches_location=False,
            timestamp_recent=False,
            software="Adobe Photoshop 2024",
        ),
    ]
    outcome = aggregate_fake_signals(TextAnalysis(consistency_score=30, has_spam_patterns=True), images)
    assert outcome.score == 100
    assert outcome.flags == [
        "edited_image",
        "gps_mismatch",
        "low_consistency",
        "missing_metadata",
        "spam_pattern",
        "stale_timestamp",
    ]
    assert outcome.risk_level is RiskLevel.CRITICAL


def test_missing_metadata_counts_per_image():
    outcome = aggregate_fake_signals(CLEAN_TEXT, [ImageMetadata(has_exif=False), ImageMetadata(has_exif=False)])
    assert outcome.score == 20
    assert outcome.flags == ["missing_metadata"]


def test_similar_reports_and_duplicate_content():
    weak = aggregate_fake_signals(CLEAN_TEXT, [], similar_report_ids=["r1"], cluster_confidence=0.5)
    assert weak.score == 30
    assert weak.flags == ["similar_reports"]

    strong = aggregate_fake_signals(CLEAN_TEXT, [], similar_report_ids=["r1"], cluster_confidence=0.9)
    assert strong.score == 30
    assert strong.flags == ["duplicate_content", "similar_reports"]
    assert strong.risk_level is RiskLevel.MEDIUM


def test_reporter_patterns():
    newcomer = ReporterSignals(is_new_reporter=True, reports_last_window=0)
    assert aggregate_fake_signals(CLEAN_TEXT, [], severity="critical", reporter=newcomer).flags == [
        "new_user_critical_report"
    ]
    # only critical reports from newcomers are suspicious
    assert aggregate_fake_signals(CLEAN_TEXT, [], severity="high", reporter=newcomer).score == 0

    burst = ReporterSignals(is_new_reporter=False, reports_last_window=3)
    outcome = aggregate_fake_signals(CLEAN_TEXT, [], severity="low", reporter=burst)
    assert outcome.score == 20
    assert outcome.flags == ["burst_submission"]


def test_risk_level_boundaries():
    assert risk_level(0) is RiskLevel.LOW
    assert risk_level(24) is RiskLevel.LOW
    assert risk_level(25) is RiskLevel.MEDIUM
    assert risk_level(50) is RiskLevel.HIGH
    assert risk_level(75) is RiskLevel.CRITICAL


def test_editing_software_detection():
    assert is_editing_software("GIMP 2.10")
    assert is_editing_software("Adobe Lightroom Classic")
    assert not is_editing_software("iOS 17.2")
    assert not is_editing_software(None)


def test_derive_image_facts_from_raw_fields():
    far_and_old = ImageMetadata(
        has_exif=True,
        gps_latitude=41.7128,
        gps_longitude=-74.0060,
        captured_at=utc_now() - timedelta(days=30),
    )
    derived = derive_image_facts(far_and_old, 40.7128, -74.0060)
    assert derived.gps_matches_location is False
    assert derived.timestamp_recent is False

    near_and_fresh = ImageMetadata(
        has_exif=True,
        gps_latitude=40.7130,
        gps_longitude=-74.0062,
        captured_at=utc_now() - timedelta(hours=2),
    )
    derived = derive_image_facts(near_and_fresh, 40.7128, -74.0060)
    assert derived.gps_matches_location is True
    assert derived.timestamp_recent is True


def test_derive_image_facts_keeps_analyzer_verdict():
    image = ImageMetadata(has_exif=True, gps_latitude=10.0, gps_longitude=10.0, gps_matches_location=True)
    assert derive_image_facts(image, 40.7128, -74.0060).gps_matches_location is True
    # no claimed coordinates: nothing to compare against
    bare = ImageMetadata(has_exif=True, gps_latitude=10.0, gps_longitude=10.0)
    assert derive_image_facts(bare, None, None).gps_matches_location is None
