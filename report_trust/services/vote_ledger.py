"""Vote ledger: at most one vote per (report, user) with toggle semantics.

* no vote yet        -> create it, +1 on its counter          (``created``)
* same type again    -> delete it, -1 on its counter          (``removed``)
* opposite type      -> replace it, -1 old counter, +1 new    (``switched``)

Counters only move inside ``mutate_report`` so they are never read or written
half-way through another mutation of the same report.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from report_trust.errors import ConcurrentModificationError, NotFoundError, ValidationError
from report_trust.models.db import Report, User, Vote
from report_trust.models.db.enums import ChangeEventType, VoteType
from report_trust.services.notifier import ChangeNotifier
from report_trust.services.report_mutation import load_report, mutate_report
from report_trust.utils import get_logger
from report_trust.utils.time import utc_now

logger = get_logger(__name__)


@dataclass(slots=True)
class VoteResult:
    report: Report
    action: str
    user_vote: Optional[VoteType]


def parse_vote_type(value: str | VoteType) -> VoteType:
    try:
        return VoteType(value)
    except ValueError:
        raise ValidationError(
            f"Invalid vote type '{value}'. Expected one of: {[v.value for v in VoteType]}",
            details={"field": "vote_type"},
        )


def _require_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})
    return user


def _current_vote(session: Session, report_id: str, user_id: str) -> Optional[Vote]:
    return session.query(Vote).filter(Vote.report_id == report_id, Vote.user_id == user_id).one_or_none()


def _adjust(report: Report, vote_type: VoteType, delta: int) -> None:
    if vote_type is VoteType.UPVOTE:
        report.upvotes = max(0, (report.upvotes or 0) + delta)
    else:
        report.downvotes = max(0, (report.downvotes or 0) + delta)


def cast_vote(
    session: Session,
    report_id: str,
    user_id: str,
    vote_type: str | VoteType,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> VoteResult:
    requested = parse_vote_type(vote_type)
    _require_user(session, user_id)
    outcome: dict[str, object] = {}

    def apply(report: Report) -> bool:
        existing = _current_vote(session, report_id, user_id)
        if existing is None:
            session.add(Vote(report_id=report_id, user_id=user_id, vote_type=requested))
            _adjust(report, requested, +1)
            outcome.update(action="created", user_vote=requested)
        elif VoteType(existing.vote_type) is requested:
            session.delete(existing)
            _adjust(report, requested, -1)
            outcome.update(action="removed", user_vote=None)
        else:
            _adjust(report, VoteType(existing.vote_type), -1)
            _adjust(report, requested, +1)
            existing.vote_type = requested
            existing.updated_at = utc_now()
            outcome.update(action="switched", user_vote=requested)
        return True

    try:
        result = mutate_report(
            session, report_id, apply, event_type=ChangeEventType.REPORT_UPDATED, notifier=notifier
        )
    except IntegrityError as e:
        # Only reachable when another process inserted the same (report, user) vote concurrently.
        raise ConcurrentModificationError(
            "Vote changed concurrently; refetch and retry",
            details={"report_id": report_id, "user_id": user_id},
        ) from e

    logger.info(
        "Vote recorded",
        report_id=report_id,
        user_id=user_id,
        vote_type=requested.value,
        action=outcome["action"],
        upvotes=result.report.upvotes,
        downvotes=result.report.downvotes,
    )
    return VoteResult(report=result.report, action=str(outcome["action"]), user_vote=outcome["user_vote"])  # type: ignore[arg-type]


def remove_vote(
    session: Session,
    report_id: str,
    user_id: str,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> VoteResult:
    """Delete the user's vote if present; absent vote is a no-op (no version bump, no event)."""
    _require_user(session, user_id)

    def apply(report: Report) -> bool:
        existing = _current_vote(session, report_id, user_id)
        if existing is None:
            return False
        _adjust(report, VoteType(existing.vote_type), -1)
        session.delete(existing)
        return True

    result = mutate_report(session, report_id, apply, event_type=ChangeEventType.REPORT_UPDATED, notifier=notifier)
    action = "removed" if result.changed else "unchanged"
    logger.info("Vote removal processed", report_id=report_id, user_id=user_id, action=action)
    return VoteResult(report=result.report, action=action, user_vote=None)


def get_vote(session: Session, report_id: str, user_id: str) -> Optional[Vote]:
    load_report(session, report_id)
    return _current_vote(session, report_id, user_id)


def get_tally(session: Session, report_id: str) -> dict[str, int]:
    report = load_report(session, report_id)
    return {
        "upvotes": report.upvotes,
        "downvotes": report.downvotes,
        "consensus_score": report.consensus_score,
    }


__all__ = ["VoteResult", "parse_vote_type", "cast_vote", "remove_vote", "get_vote", "get_tally"]
