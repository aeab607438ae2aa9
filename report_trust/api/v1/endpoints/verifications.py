"""
Verification endpoints: one corroboration per user and report.
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
import time
from report_trust.api.deps import get_db, get_current_user
from report_trust.errors import TrustEngineError
from report_trust.models.db import User
from report_trust.models.schemas.base import ResponseBase
from report_trust.models.schemas.verifications import MyVerifications, VerificationOutcome
from report_trust.services import verification_ledger
from report_trust.utils import get_logger, log_business_event, log_performance

router = APIRouter()
logger = get_logger(__name__)


@router.post(
    "/reports/{report_id}/verify",
    response_model=ResponseBase,
    summary="Verify a report",
    description="Adds the caller's verification; a second attempt by the same user is rejected with 409"
)
def verify_report(
    report_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info("Verification requested", report_id=report_id, user_id=current_user.id, request_id=request_id)

    try:
        result = verification_ledger.record_verification(db, report_id, current_user.id)
        report = result.report

        log_business_event(
            event_type="report_verified",
            details={
                "report_id": report_id,
                "verification_count": report.verification_count,
                "eligible_for_confirmation": result.eligible_for_confirmation,
            },
            user_id=current_user.id,
            request_id=request_id
        )
        log_performance(
            operation="verify_report",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"report_id": report_id}
        )
        body = VerificationOutcome(
            report_id=report.id,
            verification_count=report.verification_count,
            consensus_score=report.consensus_score,
            eligible_for_confirmation=result.eligible_for_confirmation,
            version=report.version,
        )
        return ResponseBase(success=True, message="Report verified", data=body.model_dump(mode="json"))
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        logger.error("Verification failed with unexpected error", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during verification"
        )


@router.get(
    "/reports/{report_id}/verification-count",
    summary="Verification count"
)
def get_verification_count(
    report_id: str,
    db: Session = Depends(get_db)
) -> dict:
    count = verification_ledger.verification_count(db, report_id)
    return {
        "report_id": report_id,
        "verification_count": count,
        "eligible_for_confirmation": verification_ledger.is_eligible_for_confirmation(count),
    }


@router.get(
    "/verifications/mine",
    response_model=MyVerifications,
    summary="Reports the caller has verified"
)
def my_verifications(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> MyVerifications:
    return MyVerifications(report_ids=verification_ledger.list_mine(db, current_user.id))
