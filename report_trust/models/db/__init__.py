from .users import User
from .reports import Report
from .votes import Vote
from .verifications import Verification
from .clusters import ReportCluster
from .enums import ReportType, Severity, ReportStatus, VoteType, UserRole, ChangeEventType, RiskLevel

__all__ = [
    "User",
    "Report",
    "Vote",
    "Verification",
    "ReportCluster",
    "ReportType",
    "Severity",
    "ReportStatus",
    "VoteType",
    "UserRole",
    "ChangeEventType",
    "RiskLevel",
]
