"""
Pydantic schemas for votes and tallies.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict
from ..db.enums import VoteType


class VoteCast(BaseModel):
    """vote_type stays a plain string so unknown values surface as a 400 ValidationError."""
    vote_type: str = Field(description="upvote | downvote")


class VoteRead(BaseModel):
    report_id: str
    user_id: str
    vote_type: VoteType
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VoteTally(BaseModel):
    upvotes: int
    downvotes: int
    consensus_score: int


class VoteOutcome(VoteTally):
    action: str = Field(description="created | removed | switched | unchanged")
    user_vote: Optional[VoteType]
    version: int
