from __future__ import annotations
"""Materialized duplicate clusters from the latest clustering run.

Not a source of truth: every run deletes and re-inserts the whole set in a
single transaction.
"""
from datetime import datetime
from sqlalchemy import Integer, String, Float, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from report_trust.database import Base
from report_trust.utils.time import utc_now


class ReportCluster(Base):
    __tablename__ = "report_clusters"
    # Clusters are keyed by their primary so ids stay stable across identical runs.
    cluster_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    primary_report_id: Mapped[str] = mapped_column(String(36), ForeignKey("reports.id"), nullable=False, index=True)
    related_report_ids: Mapped[list] = mapped_column(JSON, default=list)
    confidence: Mapped[float] = mapped_column(Float, default=0.0)
    reasons: Mapped[list] = mapped_column(JSON, default=list)
    position: Mapped[int] = mapped_column(Integer, default=0)
    run_id: Mapped[str] = mapped_column(String(36), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)
