"""
Pydantic schemas for verification results.
"""
from typing import List
from pydantic import BaseModel


class VerificationOutcome(BaseModel):
    report_id: str
    verification_count: int
    consensus_score: int
    eligible_for_confirmation: bool
    version: int


class MyVerifications(BaseModel):
    report_ids: List[str]
