"""Verification ledger: one append-only corroboration per (report, user).

A repeat attempt is rejected before touching the row; the unique constraint
on ``verifications`` is the final guard against a racing writer in another
process.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from report_trust.config import CONFIRMATION_SETTINGS
from report_trust.errors import DuplicateVerificationError, NotFoundError
from report_trust.models.db import Report, User, Verification
from report_trust.models.db.enums import ChangeEventType
from report_trust.services.notifier import ChangeNotifier
from report_trust.services.report_mutation import load_report, mutate_report
from report_trust.utils import get_logger

logger = get_logger(__name__)


@dataclass(slots=True)
class VerificationResult:
    report: Report
    eligible_for_confirmation: bool


def confirmation_threshold() -> int:
    return int(CONFIRMATION_SETTINGS["min_verifications"])


def is_eligible_for_confirmation(verification_count: int) -> bool:
    """Eligibility depends on the count alone, not on the current status."""
    return verification_count >= confirmation_threshold()


def _duplicate(report_id: str, user_id: str) -> DuplicateVerificationError:
    return DuplicateVerificationError(
        "You have already verified this report",
        details={"report_id": report_id, "user_id": user_id},
    )


def has_verified(session: Session, report_id: str, user_id: str) -> bool:
    return session.query(Verification.id).filter(
        Verification.report_id == report_id,
        Verification.user_id == user_id,
    ).first() is not None


def record_verification(
    session: Session,
    report_id: str,
    user_id: str,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> VerificationResult:
    if session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

    def apply(report: Report) -> bool:
        if has_verified(session, report_id, user_id):
            raise _duplicate(report_id, user_id)
        session.add(Verification(report_id=report_id, user_id=user_id))
        report.verification_count = (report.verification_count or 0) + 1
        return True

    try:
        result = mutate_report(
            session, report_id, apply, event_type=ChangeEventType.REPORT_VERIFIED, notifier=notifier
        )
    except IntegrityError as e:
        raise _duplicate(report_id, user_id) from e

    count = result.report.verification_count
    eligible = is_eligible_for_confirmation(count)
    logger.info(
        "Verification recorded",
        report_id=report_id,
        user_id=user_id,
        verification_count=count,
        eligible_for_confirmation=eligible,
    )
    return VerificationResult(report=result.report, eligible_for_confirmation=eligible)


def list_mine(session: Session, user_id: str) -> List[str]:
    rows = (
        session.query(Verification.report_id)
        .filter(Verification.user_id == user_id)
        .order_by(Verification.created_at, Verification.id)
        .all()
    )
    return [r[0] for r in rows]


def verification_count(session: Session, report_id: str) -> int:
    return load_report(session, report_id).verification_count


__all__ = [
    "VerificationResult",
    "confirmation_threshold",
    "is_eligible_for_confirmation",
    "has_verified",
    "record_verification",
    "list_mine",
    "verification_count",
]
