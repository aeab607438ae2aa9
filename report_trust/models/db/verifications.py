from __future__ import annotations
"""SQLAlchemy model for one-time community verifications (append-only)."""
from datetime import datetime
from typing import TYPE_CHECKING
from sqlalchemy import Integer, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column

if TYPE_CHECKING:  # pragma: no cover
    from .reports import Report
from report_trust.database import Base
from report_trust.utils.time import utc_now


class Verification(Base):
    __tablename__ = "verifications"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    report_id: Mapped[str] = mapped_column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)

    report: Mapped["Report"] = relationship("Report", back_populates="verifications")

    __table_args__ = (
        UniqueConstraint("report_id", "user_id", name="uq_verification_report_user"),
    )
