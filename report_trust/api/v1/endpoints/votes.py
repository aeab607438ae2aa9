"""
Vote endpoints. Casting the same vote twice removes it; casting the opposite
vote switches it.
"""
from typing import Any, Dict
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
import time
from report_trust.api.deps import get_db, get_current_user
from report_trust.errors import TrustEngineError
from report_trust.models.db import User
from report_trust.models.schemas.base import ResponseBase
from report_trust.models.schemas.votes import VoteCast, VoteOutcome, VoteRead, VoteTally
from report_trust.services import vote_ledger
from report_trust.utils import get_logger, log_business_event, log_performance

router = APIRouter()
logger = get_logger(__name__)


def _outcome(result: vote_ledger.VoteResult) -> VoteOutcome:
    return VoteOutcome(
        upvotes=result.report.upvotes,
        downvotes=result.report.downvotes,
        consensus_score=result.report.consensus_score,
        action=result.action,
        user_vote=result.user_vote,
        version=result.report.version,
    )


@router.post(
    "/{report_id}/vote",
    response_model=ResponseBase,
    summary="Cast or toggle a vote"
)
def cast_vote(
    report_id: str,
    vote: VoteCast,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ResponseBase:
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")

    logger.info(
        "Vote requested",
        report_id=report_id,
        user_id=current_user.id,
        vote_type=vote.vote_type,
        request_id=request_id
    )

    try:
        result = vote_ledger.cast_vote(db, report_id, current_user.id, vote.vote_type)

        log_business_event(
            event_type="vote_cast",
            details={"report_id": report_id, "action": result.action, "vote_type": vote.vote_type},
            user_id=current_user.id,
            request_id=request_id
        )
        log_performance(
            operation="cast_vote",
            duration_ms=(time.time() - start_time) * 1000,
            additional_data={"report_id": report_id}
        )
        return ResponseBase(
            success=True,
            message=f"Vote {result.action}",
            data=_outcome(result).model_dump(mode="json")
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        logger.error("Vote failed with unexpected error", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during vote"
        )


@router.delete(
    "/{report_id}/vote",
    response_model=ResponseBase,
    summary="Remove the caller's vote"
)
def remove_vote(
    report_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ResponseBase:
    request_id = request.headers.get("X-Request-ID", "unknown")
    try:
        result = vote_ledger.remove_vote(db, report_id, current_user.id)
        if result.action == "removed":
            log_business_event(
                event_type="vote_removed",
                details={"report_id": report_id},
                user_id=current_user.id,
                request_id=request_id
            )
        return ResponseBase(
            success=True,
            message="Vote removed" if result.action == "removed" else "No vote to remove",
            data=_outcome(result).model_dump(mode="json")
        )
    except (HTTPException, TrustEngineError):
        raise
    except Exception as e:
        logger.error("Vote removal failed with unexpected error", error=str(e), request_id=request_id, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during vote removal"
        )


@router.get(
    "/{report_id}/vote",
    response_model=Dict[str, Any],
    summary="The caller's current vote"
)
def get_my_vote(
    report_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> Dict[str, Any]:
    vote = vote_ledger.get_vote(db, report_id, current_user.id)
    return {"vote": VoteRead.model_validate(vote).model_dump(mode="json") if vote else None}


@router.get(
    "/{report_id}/votes",
    response_model=VoteTally,
    summary="Vote tally"
)
def get_votes(
    report_id: str,
    db: Session = Depends(get_db)
) -> VoteTally:
    return VoteTally(**vote_ledger.get_tally(db, report_id))
