"""Confirmation workflow and status state machine.

Status moves forward only: reported -> verified -> responding -> resolved.
Skipping ahead is allowed, staying put or moving back is not. There is no
engine-internal auto-advance; every change is an explicit call.

Confirmation (``confirmed_by`` / ``confirmed_at``) is orthogonal to status and
is toggled by privileged roles only (see ``UserRole.can_confirm``).
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from report_trust.errors import (
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
    NothingToUnconfirmError,
    PreconditionFailedError,
    ValidationError,
)
from report_trust.models.db import Report, User
from report_trust.models.db.enums import ChangeEventType, ReportStatus, UserRole
from report_trust.services.notifier import ChangeNotifier
from report_trust.services.report_mutation import MutationResult, mutate_report
from report_trust.services.verification_ledger import confirmation_threshold
from report_trust.utils import get_logger
from report_trust.utils.time import utc_now

logger = get_logger(__name__)


def parse_role(value: str | UserRole) -> UserRole:
    try:
        return UserRole(value)
    except ValueError:
        raise ValidationError(
            f"Invalid role '{value}'. Expected one of: {[r.value for r in UserRole]}",
            details={"field": "role"},
        )


def parse_status(value: str | ReportStatus) -> ReportStatus:
    try:
        return ReportStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid status '{value}'. Expected one of: {[s.value for s in ReportStatus]}",
            details={"field": "status"},
        )


def require_confirm_capability(actor_role: str | UserRole) -> UserRole:
    role = parse_role(actor_role)
    if not role.can_confirm:
        raise ForbiddenError(
            "Only volunteers, NGOs and admins can confirm reports",
            details={"role": role.value},
        )
    return role


def confirm_report(
    session: Session,
    report_id: str,
    actor_id: str,
    actor_role: str | UserRole,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> MutationResult:
    """Officially confirm a report.

    Re-confirming an already confirmed report is a no-op (no version bump,
    no event); the original confirmer is kept.
    """
    role = require_confirm_capability(actor_role)
    if session.get(User, actor_id) is None:
        raise NotFoundError(f"User {actor_id} not found", details={"user_id": actor_id})
    threshold = confirmation_threshold()

    def apply(report: Report) -> bool:
        if report.verification_count < threshold:
            raise PreconditionFailedError(
                f"Report needs at least {threshold} verifications before confirmation",
                details={"verification_count": report.verification_count, "required": threshold},
            )
        if report.confirmed_by is not None:
            return False
        report.confirmed_by = actor_id
        report.confirmed_at = utc_now()
        return True

    result = mutate_report(session, report_id, apply, event_type=ChangeEventType.REPORT_CONFIRMED, notifier=notifier)
    logger.info(
        "Report confirmation processed",
        report_id=report_id,
        actor_id=actor_id,
        actor_role=role.value,
        changed=result.changed,
        consensus_score=result.report.consensus_score,
    )
    return result


def unconfirm_report(
    session: Session,
    report_id: str,
    actor_role: str | UserRole,
    *,
    actor_id: Optional[str] = None,
    notifier: Optional[ChangeNotifier] = None,
) -> MutationResult:
    role = require_confirm_capability(actor_role)

    def apply(report: Report) -> bool:
        if report.confirmed_by is None:
            raise NothingToUnconfirmError(
                "Report is not currently confirmed", details={"report_id": report_id}
            )
        report.confirmed_by = None
        report.confirmed_at = None
        return True

    result = mutate_report(session, report_id, apply, event_type=ChangeEventType.REPORT_UNCONFIRMED, notifier=notifier)
    logger.info(
        "Report unconfirmed",
        report_id=report_id,
        actor_id=actor_id,
        actor_role=role.value,
        consensus_score=result.report.consensus_score,
    )
    return result


def update_status(
    session: Session,
    report_id: str,
    new_status: str | ReportStatus,
    expected_version: Optional[int] = None,
    *,
    notifier: Optional[ChangeNotifier] = None,
) -> MutationResult:
    """Advance the report status, optionally guarded by the caller's version.

    A stale ``expected_version`` raises ``OptimisticLockError`` carrying the
    current version; the row is not touched.
    """
    target = parse_status(new_status)

    def apply(report: Report) -> bool:
        current = ReportStatus(report.status)
        if not current.can_advance_to(target):
            raise InvalidStatusTransitionError(
                f"Cannot move status from '{current.value}' to '{target.value}'",
                details={"from": current.value, "to": target.value},
            )
        report.status = target
        return True

    result = mutate_report(
        session,
        report_id,
        apply,
        event_type=ChangeEventType.REPORT_UPDATED,
        expected_version=expected_version,
        notifier=notifier,
    )
    logger.info(
        "Report status updated",
        report_id=report_id,
        status=target.value,
        version=result.report.version,
    )
    return result


__all__ = [
    "parse_role",
    "parse_status",
    "require_confirm_capability",
    "confirm_report",
    "unconfirm_report",
    "update_status",
]
