from .base import ResponseBase, ErrorResponse
from .users import UserCreate, UserRead
from .reports import ReportCreate, ReportRead, StatusUpdate, StatusUpdateResult, AIValidationUpdate
from .votes import VoteCast, VoteRead, VoteTally, VoteOutcome
from .verifications import VerificationOutcome, MyVerifications
from .clusters import ClusterRead, ClusterList, ClusteringRunResult
from .fake_detection import TextAnalysis, ImageMetadata, AnalyzerPayload, FakeDetectionResult

__all__ = [
    # Base
    "ResponseBase",
    "ErrorResponse",

    # Users
    "UserCreate",
    "UserRead",

    # Reports
    "ReportCreate",
    "ReportRead",
    "StatusUpdate",
    "StatusUpdateResult",
    "AIValidationUpdate",

    # Votes
    "VoteCast",
    "VoteRead",
    "VoteTally",
    "VoteOutcome",

    # Verifications
    "VerificationOutcome",
    "MyVerifications",

    # Clusters
    "ClusterRead",
    "ClusterList",
    "ClusteringRunResult",

    # Fake detection
    "TextAnalysis",
    "ImageMetadata",
    "AnalyzerPayload",
    "FakeDetectionResult",
]
