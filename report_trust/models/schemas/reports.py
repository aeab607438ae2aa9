"""
Pydantic schemas for report submission, reads, and status changes.
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict
from ..db.enums import ReportType, Severity, ReportStatus


class ReportCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    type: ReportType
    severity: Severity
    location: str = Field(min_length=1, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    media_urls: List[str] = Field(default_factory=list, max_length=20)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Warehouse fire near the harbour",
            "description": "Thick smoke and visible flames from the old warehouse on Dock Road.",
            "type": "fire",
            "severity": "high",
            "location": "Dock Road, Harbour District",
            "latitude": 40.7128,
            "longitude": -74.0060,
            "media_urls": ["https://cdn.example.org/uploads/fire-1.jpg"]
        }
    })


class ReportRead(BaseModel):
    id: str
    user_id: Optional[str]
    title: str
    description: str
    type: ReportType
    severity: Severity
    location: str
    latitude: Optional[float]
    longitude: Optional[float]
    media_urls: List[str]
    upvotes: int
    downvotes: int
    verification_count: int
    consensus_score: int
    trust_tier: str
    status: ReportStatus
    confirmed_by: Optional[str]
    confirmed_at: Optional[datetime]
    ai_validation_score: Optional[float]
    ai_validation_notes: Optional[str]
    fake_detection_score: Optional[int]
    fake_detection_flags: List[str]
    fake_detection_risk: Optional[str]
    similar_report_ids: List[str]
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusUpdate(BaseModel):
    """Status is a plain string so unknown values surface as a 400 ValidationError."""
    status: str
    version: Optional[int] = Field(None, ge=1, description="Expected current version (optimistic lock)")


class StatusUpdateResult(BaseModel):
    id: str
    status: ReportStatus
    version: int
    updated_at: datetime


class AIValidationUpdate(BaseModel):
    score: float = Field(description="Classifier confidence that the report is genuine, 0-100")
    notes: Optional[str] = Field(None, max_length=2000)
