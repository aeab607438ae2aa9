"""
Duplicate cluster endpoints.
"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session
import time
from report_trust.api.deps import get_db, require_role
from report_trust.errors import TrustEngineError
from report_trust.models.db import User
from report_trust.models.db.enums import UserRole
from report_trust.models.schemas.base import ResponseBase
from report_trust.models.schemas.clusters import ClusterList, ClusterRead, ClusteringRunResult
from report_trust.services import clustering
from report_trust.utils import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get(
    "/clusters",
    response_model=ClusterList,
    summary="Current duplicate clusters",
    description="Clusters from the latest completed run, largest first"
)
def get_clusters(db: Session = Depends(get_db)) -> ClusterList:
    listing = clustering.list_clusters(db)
    return ClusterList(
        clusters=[ClusterRead.model_validate(c) for c in listing["clusters"]],
        total_clusters=listing["total_clusters"],
        total_reports_in_clusters=listing["total_reports_in_clusters"],
    )


@router.post(
    "/run-clustering",
    response_model=ResponseBase,
    summary="Run duplicate clustering",
    description="Recompute clusters over the most recent reports (NGO/admin). 409 while another run is active."
)
def run_clustering(
    request: Request,
    limit: Optional[int] = Query(None, description="Number of most recent reports to scan"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role([UserRole.NGO, UserRole.ADMIN]))
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info("Clustering requested", limit=limit, user_id=current_user.id, request_id=request_id)

    try:
        run = clustering.run_clustering(db, limit)
        body = ClusteringRunResult(
            run_id=run.run_id,
            clusters_found=len(run.clusters),
            reports_analyzed=run.reports_analyzed,
            reports_updated=run.reports_updated,
        )
        logger.info(
            "Clustering request completed",
            run_id=run.run_id,
            duration_ms=round((time.time() - start_time) * 1000, 2),
            request_id=request_id
        )
        return ResponseBase(success=True, message="Clustering completed", data=body.model_dump(mode="json"))
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        logger.error("Clustering failed with unexpected error", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during clustering"
        )
