"""
Report endpoints: submission, reads (with conditional GET), status changes,
official confirmation, classifier input and on-demand fake detection.
"""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session
import time
from report_trust.api.deps import (
    get_db,
    get_current_user,
    get_job_queue,
    get_optional_user,
    get_pagination_params,
    require_role,
)
from report_trust.errors import TrustEngineError
from report_trust.models.db import User
from report_trust.models.db.enums import UserRole
from report_trust.models.schemas.base import ResponseBase
from report_trust.models.schemas.fake_detection import FakeDetectionResult
from report_trust.models.schemas.reports import (
    AIValidationUpdate,
    ReportCreate,
    ReportRead,
    StatusUpdate,
    StatusUpdateResult,
)
from report_trust.services import confirmation_workflow, report_service
from report_trust.services.conditional import compute_etag, is_not_modified, last_modified
from report_trust.services.fake_detection import run_fake_detection
from report_trust.services.fake_detection_scoring import risk_level
from report_trust.services.report_views import to_report_read
from report_trust.utils import get_logger, log_business_event, log_performance
from report_trust.utils.time import as_utc

router = APIRouter()
logger = get_logger(__name__)

require_coordinator = require_role([UserRole.NGO, UserRole.ADMIN])
require_admin = require_role([UserRole.ADMIN])


def _internal_error(action: str, e: Exception, request_id: str) -> HTTPException:
    logger.error(
        f"{action} failed with unexpected error",
        error=str(e),
        request_id=request_id,
        exc_info=True
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal server error during {action.lower()}"
    )


@router.post(
    "/",
    response_model=ResponseBase,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a report",
    description="Create a report in status 'reported' with neutral trust state; fake detection runs in the background"
)
def create_report(
    report_data: ReportCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
    queue: Any = Depends(get_job_queue)
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    user_id = current_user.id if current_user else None

    logger.info(
        "Report submission started",
        user_id=user_id,
        report_type=report_data.type.value,
        severity=report_data.severity.value,
        media_count=len(report_data.media_urls),
        request_id=request_id
    )

    try:
        report = report_service.create_report(db, report_data, user_id, queue=queue)

        log_performance(
            operation="create_report",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"report_id": report.id}
        )
        return ResponseBase(
            success=True,
            message="Report submitted",
            data={"report": to_report_read(report).model_dump(mode="json")}
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("Report submission", e, request_id)


@router.get(
    "/",
    response_model=Dict[str, Any],
    summary="List reports",
    description="Newest first, optionally filtered by status, type and severity"
)
def list_reports(
    request: Request,
    status_filter: Optional[str] = Query(None, alias="status"),
    type_filter: Optional[str] = Query(None, alias="type"),
    severity: Optional[str] = Query(None),
    pagination: dict = Depends(get_pagination_params),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        items, total = report_service.list_reports(
            db,
            status=status_filter,
            report_type=type_filter,
            severity=severity,
            skip=pagination["offset"],
            limit=pagination["limit"],
        )
        logger.debug("Reports listed", count=len(items), total=total, request_id=request_id)
        return {
            "reports": [to_report_read(r).model_dump(mode="json") for r in items],
            "total": total,
            "limit": pagination["limit"],
            "offset": pagination["offset"],
        }
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("Report listing", e, request_id)


@router.get(
    "/{report_id}",
    response_model=ReportRead,
    summary="Get report",
    description="Supports If-None-Match / If-Modified-Since; answers 304 when the cached copy is current",
    responses={304: {"description": "Not modified"}}
)
def get_report(
    report_id: str,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    report = report_service.get_report(db, report_id)
    headers = {"ETag": compute_etag(report), "Last-Modified": last_modified(report)}
    if is_not_modified(
        report,
        if_none_match=request.headers.get("If-None-Match"),
        if_modified_since=request.headers.get("If-Modified-Since"),
    ):
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)
    response.headers.update(headers)
    return to_report_read(report)


@router.patch(
    "/{report_id}/status",
    response_model=ResponseBase,
    summary="Advance report status",
    description="Forward-only transition; pass 'version' to guard against concurrent edits (409 on mismatch)"
)
def update_status(
    report_id: str,
    update: StatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_coordinator)
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "Status update requested",
        report_id=report_id,
        target_status=update.status,
        expected_version=update.version,
        user_id=current_user.id,
        request_id=request_id
    )

    try:
        result = confirmation_workflow.update_status(db, report_id, update.status, update.version)
        report = result.report

        log_business_event(
            event_type="status_updated",
            details={"report_id": report_id, "status": report.status.value, "version": report.version},
            user_id=current_user.id,
            request_id=request_id
        )
        log_performance(
            operation="update_status",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"report_id": report_id}
        )
        body = StatusUpdateResult(
            id=report.id,
            status=report.status,
            version=report.version,
            updated_at=as_utc(report.updated_at),
        )
        return ResponseBase(success=True, message="Status updated", data=body.model_dump(mode="json"))
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("Status update", e, request_id)


@router.put(
    "/{report_id}/ai-validation",
    response_model=ResponseBase,
    summary="Record classifier score",
    description="Store the external classifier's 0-100 score and recompute consensus (admin)"
)
def set_ai_validation(
    report_id: str,
    update: AIValidationUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        report = report_service.apply_ai_validation(db, report_id, update.score, update.notes)
        return ResponseBase(
            success=True,
            message="AI validation recorded",
            data={
                "report_id": report.id,
                "ai_validation_score": report.ai_validation_score,
                "consensus_score": report.consensus_score,
                "version": report.version,
            }
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("AI validation", e, request_id)


@router.post(
    "/{report_id}/confirm",
    response_model=ResponseBase,
    summary="Officially confirm a report",
    description="Volunteers, NGOs and admins; requires the verification threshold. Re-confirming is a no-op."
)
def confirm_report(
    report_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        result = confirmation_workflow.confirm_report(db, report_id, current_user.id, current_user.role)
        report = result.report
        if result.changed:
            log_business_event(
                event_type="report_confirmed",
                details={"report_id": report_id, "consensus_score": report.consensus_score},
                user_id=current_user.id,
                request_id=request_id
            )
        log_performance(
            operation="confirm_report",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"report_id": report_id, "changed": result.changed}
        )
        return ResponseBase(
            success=True,
            message="Report confirmed" if result.changed else "Report already confirmed",
            data={"report": to_report_read(report).model_dump(mode="json"), "changed": result.changed}
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("Confirmation", e, request_id)


@router.delete(
    "/{report_id}/confirm",
    response_model=ResponseBase,
    summary="Withdraw official confirmation"
)
def unconfirm_report(
    report_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        result = confirmation_workflow.unconfirm_report(
            db, report_id, current_user.role, actor_id=current_user.id
        )
        log_business_event(
            event_type="report_unconfirmed",
            details={"report_id": report_id, "consensus_score": result.report.consensus_score},
            user_id=current_user.id,
            request_id=request_id
        )
        return ResponseBase(
            success=True,
            message="Report unconfirmed",
            data={"report": to_report_read(result.report).model_dump(mode="json")}
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("Unconfirmation", e, request_id)


@router.post(
    "/{report_id}/fake-detection",
    response_model=FakeDetectionResult,
    summary="Re-run fake detection",
    description="Optionally pass analyzer output ({text_analysis, images}); analyzer failures leave the score null"
)
async def rerun_fake_detection(
    report_id: str,
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_coordinator)
) -> FakeDetectionResult:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        run = await run_fake_detection(db, report_id, payload)
        log_business_event(
            event_type="fake_detection_run",
            details={"report_id": report_id, "score": run.score, "flags": run.flags},
            user_id=current_user.id,
            request_id=request_id
        )
        log_performance(
            operation="fake_detection",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"report_id": report_id, "degraded": run.analyzer_error is not None}
        )
        return FakeDetectionResult(
            report_id=report_id,
            score=run.score,
            flags=run.flags,
            risk_level=risk_level(run.score) if run.score is not None else None,
            analyzer_error=run.analyzer_error,
            version=run.report.version,
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        raise _internal_error("Fake detection", e, request_id)
