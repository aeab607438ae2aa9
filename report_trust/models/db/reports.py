from __future__ import annotations
"""SQLAlchemy model for disaster reports and their derived trust state.

Trust fields (counters, scores, confirmation, flags, similar ids) are owned by
the trust services and only written through ``services.report_mutation``.
``version`` is the optimistic-lock column: SQLAlchemy bumps it by one on every
UPDATE and rejects a flush whose row was changed underneath it.
"""
import uuid
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, Text, Float, ForeignKey, DateTime, Enum, JSON, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .users import User
    from .votes import Vote
    from .verifications import Verification
from report_trust.database import Base
from report_trust.utils.time import utc_now
from .enums import ReportType, Severity, ReportStatus


def _new_id() -> str:
    return str(uuid.uuid4())


class Report(Base):
    __tablename__ = "reports"
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # Content
    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    type: Mapped[ReportType] = mapped_column(Enum(ReportType), index=True)
    severity: Mapped[Severity] = mapped_column(Enum(Severity))
    location: Mapped[str] = mapped_column(String(500))
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    media_urls: Mapped[list] = mapped_column(JSON, default=list)

    # Derived trust fields
    upvotes: Mapped[int] = mapped_column(Integer, default=0)
    downvotes: Mapped[int] = mapped_column(Integer, default=0)
    verification_count: Mapped[int] = mapped_column(Integer, default=0)
    consensus_score: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[ReportStatus] = mapped_column(Enum(ReportStatus), default=ReportStatus.REPORTED, index=True)
    confirmed_by: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ai_validation_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_validation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fake_detection_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fake_detection_flags: Mapped[list] = mapped_column(JSON, default=list)
    similar_report_ids: Mapped[list] = mapped_column(JSON, default=list)

    # Concurrency control
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    reporter: Mapped["User | None"] = relationship("User", back_populates="reports", foreign_keys=[user_id])
    votes: Mapped[list["Vote"]] = relationship("Vote", back_populates="report")
    verifications: Mapped[list["Verification"]] = relationship("Verification", back_populates="report")

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        Index("ix_reports_created_at_id", "created_at", "id"),
    )
