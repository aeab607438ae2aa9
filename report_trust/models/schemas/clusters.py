"""
Pydantic schemas for duplicate clusters.
"""
from datetime import datetime
from typing import List
from pydantic import BaseModel, Field, ConfigDict


class ClusterRead(BaseModel):
    cluster_id: str
    primary_report_id: str
    related_report_ids: List[str]
    confidence: float = Field(ge=0.0, le=1.0)
    reasons: List[str]
    run_id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ClusterList(BaseModel):
    clusters: List[ClusterRead]
    total_clusters: int
    total_reports_in_clusters: int


class ClusteringRunResult(BaseModel):
    run_id: str
    clusters_found: int
    reports_analyzed: int
    reports_updated: int
