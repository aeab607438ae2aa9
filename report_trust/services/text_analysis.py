"""Built-in heuristic text analyzer.

Used when no external text analysis is supplied. Looks for spam phrasing,
shouting, word repetition, and whether the description plausibly talks about
the declared incident type.
"""
from __future__ import annotations

import re
from collections import Counter

from report_trust.models.db.enums import ReportType
from report_trust.models.schemas.fake_detection import TextAnalysis

SPAM_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"click here",
        r"free money",
        r"urgent!!!!",
        r"act now",
        r"limited time",
        r"congratulations",
        r"winner",
        r"claim.*prize",
    )
]

TYPE_KEYWORDS: dict[ReportType, tuple[str, ...]] = {
    ReportType.FIRE: ("fire", "flame", "smoke", "burn", "blaze"),
    ReportType.FLOOD: ("flood", "water", "rain", "overflow", "inundation"),
    ReportType.EARTHQUAKE: ("earthquake", "tremor", "shake", "seismic"),
    ReportType.STORM: ("storm", "wind", "hurricane", "cyclone", "tornado"),
    ReportType.ROAD_ACCIDENT: ("accident", "crash", "collision", "vehicle"),
    ReportType.EPIDEMIC: ("disease", "illness", "outbreak", "infection"),
    ReportType.LANDSLIDE: ("landslide", "soil", "slope", "erosion"),
    ReportType.GAS_LEAK: ("gas", "leak", "smell", "fumes"),
}

_CAPS_MIN_LETTERS = 20
_CAPS_RATIO = 0.5
_REPEAT_MIN_WORDS = 10
_REPEAT_SHARE = 0.2


def analyze_text(title: str, description: str, report_type: ReportType | str) -> TextAnalysis:
    indicators: list[str] = []
    combined = f"{title} {description}".lower()

    has_spam = False
    for pattern in SPAM_PATTERNS:
        if pattern.search(combined):
            has_spam = True
            indicators.append(f"spam_pattern: {pattern.pattern}")

    raw = title + description
    letters = sum(1 for c in raw if c.isascii() and c.isalpha())
    caps = sum(1 for c in raw if c.isascii() and c.isupper())
    caps_ratio = caps / letters if letters else 0.0
    has_caps = caps_ratio > _CAPS_RATIO and letters > _CAPS_MIN_LETTERS

    words = combined.split()
    counts = Counter(w for w in words if len(w) > 3)
    max_repetition = max(counts.values(), default=0)
    has_repeated = len(words) > _REPEAT_MIN_WORDS and max_repetition > len(words) * _REPEAT_SHARE

    consistency = 100
    keywords = TYPE_KEYWORDS.get(ReportType(report_type), ())
    if keywords and not any(k in combined for k in keywords):
        consistency -= 40
        indicators.append("missing_disaster_type_keywords")
    if len(description) < 20:
        consistency -= 20
        indicators.append("description_too_short")
    if len(title) < 5:
        consistency -= 15
        indicators.append("title_too_short")

    return TextAnalysis(
        consistency_score=max(0, consistency),
        spam_indicators=indicators,
        has_spam_patterns=has_spam,
        has_excessive_caps=has_caps,
        has_repeated_text=has_repeated,
    )


__all__ = ["analyze_text", "SPAM_PATTERNS", "TYPE_KEYWORDS"]
