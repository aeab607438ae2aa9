"""Central Enum definitions for core domain states.

These replace scattered string literals to ensure consistency across
DB models, schemas, and trust logic.
"""
from __future__ import annotations
import enum


class ReportType(str, enum.Enum):
    FIRE = "fire"
    FLOOD = "flood"
    EARTHQUAKE = "earthquake"
    STORM = "storm"
    ROAD_ACCIDENT = "road_accident"
    EPIDEMIC = "epidemic"
    LANDSLIDE = "landslide"
    GAS_LEAK = "gas_leak"
    BUILDING_COLLAPSE = "building_collapse"
    CHEMICAL_SPILL = "chemical_spill"
    POWER_OUTAGE = "power_outage"
    WATER_CONTAMINATION = "water_contamination"
    OTHER = "other"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ReportStatus(str, enum.Enum):
    """Lifecycle of a report; only ever moves forward."""

    REPORTED = "reported"
    VERIFIED = "verified"
    RESPONDING = "responding"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def can_advance_to(self, target: "ReportStatus") -> bool:
        return target.rank > self.rank


_STATUS_ORDER = [
    ReportStatus.REPORTED,
    ReportStatus.VERIFIED,
    ReportStatus.RESPONDING,
    ReportStatus.RESOLVED,
]


class VoteType(str, enum.Enum):
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"

    @property
    def opposite(self) -> "VoteType":
        return VoteType.DOWNVOTE if self is VoteType.UPVOTE else VoteType.UPVOTE


class UserRole(str, enum.Enum):
    CITIZEN = "citizen"
    VOLUNTEER = "volunteer"
    NGO = "ngo"
    ADMIN = "admin"

    @property
    def can_confirm(self) -> bool:
        """Official confirmation is reserved for responders and administrators."""
        return self in _CONFIRMING_ROLES


_CONFIRMING_ROLES = frozenset({UserRole.VOLUNTEER, UserRole.NGO, UserRole.ADMIN})


class ChangeEventType(str, enum.Enum):
    NEW_REPORT = "new_report"
    REPORT_UPDATED = "report_updated"
    REPORT_VERIFIED = "report_verified"
    REPORT_CONFIRMED = "report_confirmed"
    REPORT_UNCONFIRMED = "report_unconfirmed"


class RiskLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


__all__ = [
    "ReportType",
    "Severity",
    "ReportStatus",
    "VoteType",
    "UserRole",
    "ChangeEventType",
    "RiskLevel",
]
