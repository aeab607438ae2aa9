"""
Pydantic schemas for analyzer payloads and fake-detection results.

Analyzer output is treated as opaque structured data: it is validated here
and any payload that does not fit is reported as an analyzer failure.
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from ..db.enums import RiskLevel


class TextAnalysis(BaseModel):
    consistency_score: float = Field(ge=0, le=100)
    spam_indicators: List[str] = Field(default_factory=list)
    has_spam_patterns: bool = False
    has_excessive_caps: bool = False
    has_repeated_text: bool = False


class ImageMetadata(BaseModel):
    """Per-image facts; the *_matches / *_recent booleans may be derived from the raw fields."""
    url: Optional[str] = None
    has_exif: bool = False
    gps_latitude: Optional[float] = Field(None, ge=-90, le=90)
    gps_longitude: Optional[float] = Field(None, ge=-180, le=180)
    gps_matches_location: Optional[bool] = None
    captured_at: Optional[datetime] = None
    timestamp_recent: Optional[bool] = None
    camera_make: Optional[str] = None
    camera_model: Optional[str] = None
    software: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class AnalyzerPayload(BaseModel):
    """Explicit analyzer results supplied on an on-demand re-run."""
    text_analysis: Optional[TextAnalysis] = None
    images: Optional[List[ImageMetadata]] = None


class FakeDetectionResult(BaseModel):
    report_id: str
    score: Optional[int] = Field(None, ge=0, le=100)
    flags: List[str] = Field(default_factory=list)
    risk_level: Optional[RiskLevel] = None
    analyzer_error: Optional[str] = None
    version: int
