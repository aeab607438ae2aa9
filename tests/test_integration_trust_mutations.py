import socket
import threading

import pytest
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from report_trust.errors import (
    DuplicateVerificationError,
    ForbiddenError,
    InvalidStatusTransitionError,
    NotFoundError,
    NothingToUnconfirmError,
    OptimisticLockError,
    PreconditionFailedError,
    ValidationError,
)
from report_trust.models.db import Report, Verification, Vote
from report_trust.models.db.enums import ReportStatus, UserRole, VoteType
from report_trust.services import confirmation_workflow, report_service, verification_ledger, vote_ledger
from report_trust.services.notifier import ChangeNotifier, change_notifier
from report_trust.services.report_mutation import mutate_report, report_locks


def _reload(db_session, report_id):
    db_session.expire_all()
    return db_session.get(Report, report_id)


def _verify_n(db_session, user_factory, report_id, n):
    for _ in range(n):
        verification_ledger.record_verification(db_session, report_id, user_factory().id)


def test_new_report_has_neutral_trust_state(report_factory):
    report = report_factory()
    assert report.consensus_score == 30
    assert report.status == ReportStatus.REPORTED
    assert report.upvotes == 0 and report.downvotes == 0
    assert report.verification_count == 0
    assert report.fake_detection_score is None
    assert report.similar_report_ids == []
    assert report.version == 1


def test_vote_toggle_and_switch(db_session, user_factory, report_factory):
    report = report_factory()
    voter = user_factory()

    created = vote_ledger.cast_vote(db_session, report.id, voter.id, "upvote")
    assert created.action == "created"
    assert created.user_vote is VoteType.UPVOTE
    assert (created.report.upvotes, created.report.downvotes) == (1, 0)
    assert created.report.consensus_score == 50

    switched = vote_ledger.cast_vote(db_session, report.id, voter.id, "downvote")
    assert switched.action == "switched"
    assert (switched.report.upvotes, switched.report.downvotes) == (0, 1)
    assert switched.report.consensus_score == 10

    removed = vote_ledger.cast_vote(db_session, report.id, voter.id, "downvote")
    assert removed.action == "removed"
    assert removed.user_vote is None
    assert (removed.report.upvotes, removed.report.downvotes) == (0, 0)
    assert removed.report.consensus_score == 30
    assert db_session.query(Vote).count() == 0
    assert removed.report.version == 4


def test_remove_vote_without_vote_is_noop(db_session, user_factory, report_factory):
    report = report_factory()
    result = vote_ledger.remove_vote(db_session, report.id, user_factory().id)
    assert result.action == "unchanged"
    assert result.report.version == 1


def test_invalid_vote_type_rejected(db_session, user_factory, report_factory):
    report = report_factory()
    with pytest.raises(ValidationError):
        vote_ledger.cast_vote(db_session, report.id, user_factory().id, "sideways")


def test_vote_on_unknown_report(db_session, user_factory):
    with pytest.raises(NotFoundError):
        vote_ledger.cast_vote(db_session, "missing-report", user_factory().id, "upvote")


def test_duplicate_verification_rejected(db_session, user_factory, report_factory):
    report = report_factory()
    verifier = user_factory(UserRole.VOLUNTEER)
    first = verification_ledger.record_verification(db_session, report.id, verifier.id)
    assert first.report.verification_count == 1
    assert first.eligible_for_confirmation is False

    with pytest.raises(DuplicateVerificationError):
        verification_ledger.record_verification(db_session, report.id, verifier.id)

    stored = _reload(db_session, report.id)
    assert stored.verification_count == 1
    assert stored.version == 2
    assert db_session.query(Verification).count() == 1
    assert verification_ledger.list_mine(db_session, verifier.id) == [report.id]


def test_votes_and_verifications_are_independent(db_session, user_factory, report_factory):
    report = report_factory()
    user = user_factory()
    vote_ledger.cast_vote(db_session, report.id, user.id, VoteType.UPVOTE)
    result = verification_ledger.record_verification(db_session, report.id, user.id)
    assert result.report.upvotes == 1
    assert result.report.verification_count == 1


def test_confirmation_requires_threshold(db_session, user_factory, report_factory):
    report = report_factory()
    volunteer = user_factory(UserRole.VOLUNTEER)
    _verify_n(db_session, user_factory, report.id, 2)

    with pytest.raises(PreconditionFailedError):
        confirmation_workflow.confirm_report(db_session, report.id, volunteer.id, volunteer.role)
    assert _reload(db_session, report.id).confirmed_by is None

    third = verification_ledger.record_verification(db_session, report.id, user_factory().id)
    assert third.eligible_for_confirmation is True
    before = third.report.consensus_score

    result = confirmation_workflow.confirm_report(db_session, report.id, volunteer.id, volunteer.role)
    assert result.changed is True
    assert result.report.confirmed_by == volunteer.id
    assert result.report.confirmed_at is not None
    assert result.report.consensus_score == before + 15
    # confirmation does not move the lifecycle status
    assert result.report.status == ReportStatus.REPORTED


def test_reconfirm_is_noop(db_session, user_factory, report_factory):
    report = report_factory()
    _verify_n(db_session, user_factory, report.id, 3)
    ngo = user_factory(UserRole.NGO)
    admin = user_factory(UserRole.ADMIN)
    confirmation_workflow.confirm_report(db_session, report.id, ngo.id, ngo.role)
    version = _reload(db_session, report.id).version

    again = confirmation_workflow.confirm_report(db_session, report.id, admin.id, admin.role)
    assert again.changed is False
    assert again.report.confirmed_by == ngo.id
    assert again.report.version == version


def test_citizen_cannot_confirm(db_session, user_factory, report_factory):
    report = report_factory()
    citizen = user_factory()
    with pytest.raises(ForbiddenError):
        confirmation_workflow.confirm_report(db_session, report.id, citizen.id, citizen.role)
    with pytest.raises(ValidationError):
        confirmation_workflow.confirm_report(db_session, report.id, citizen.id, "mayor")


def test_unconfirm_restores_score(db_session, user_factory, report_factory):
    report = report_factory()
    _verify_n(db_session, user_factory, report.id, 3)
    admin = user_factory(UserRole.ADMIN)

    with pytest.raises(NothingToUnconfirmError):
        confirmation_workflow.unconfirm_report(db_session, report.id, admin.role)

    unconfirmed_score = _reload(db_session, report.id).consensus_score
    confirmation_workflow.confirm_report(db_session, report.id, admin.id, admin.role)
    result = confirmation_workflow.unconfirm_report(db_session, report.id, admin.role, actor_id=admin.id)
    assert result.report.confirmed_by is None
    assert result.report.confirmed_at is None
    assert result.report.consensus_score == unconfirmed_score


def test_status_moves_forward_only(db_session, report_factory):
    report = report_factory()
    result = confirmation_workflow.update_status(db_session, report.id, "responding")
    assert result.report.status == ReportStatus.RESPONDING

    with pytest.raises(InvalidStatusTransitionError):
        confirmation_workflow.update_status(db_session, report.id, "verified")
    with pytest.raises(InvalidStatusTransitionError):
        confirmation_workflow.update_status(db_session, report.id, "responding")
    with pytest.raises(ValidationError):
        confirmation_workflow.update_status(db_session, report.id, "archived")

    assert confirmation_workflow.update_status(db_session, report.id, "resolved").report.status == ReportStatus.RESOLVED


def test_stale_version_leaves_row_untouched(db_session, user_factory, report_factory):
    report = report_factory()
    vote_ledger.cast_vote(db_session, report.id, user_factory().id, "upvote")

    with pytest.raises(OptimisticLockError) as excinfo:
        confirmation_workflow.update_status(db_session, report.id, "verified", expected_version=1)
    assert excinfo.value.expected == 1
    assert excinfo.value.actual == 2

    stored = _reload(db_session, report.id)
    assert stored.status == ReportStatus.REPORTED
    assert stored.version == 2

    ok = confirmation_workflow.update_status(db_session, report.id, "verified", expected_version=2)
    assert ok.report.version == 3


def test_internal_write_retries_version_conflict(db_session, report_factory):
    report = report_factory()
    attempts = []

    def apply(row):
        attempts.append(row.version)
        if len(attempts) == 1:
            # another process commits in between our read and our write
            with db_session.get_bind().begin() as conn:
                conn.execute(text("UPDATE reports SET version = version + 1 WHERE id = :id"), {"id": report.id})
        row.ai_validation_notes = "reviewed"
        return True

    result = mutate_report(db_session, report.id, apply)
    assert result.changed is True
    assert attempts == [1, 2]
    assert result.report.version == 3
    assert _reload(db_session, report.id).ai_validation_notes == "reviewed"


def test_ai_validation_updates_consensus(db_session, report_factory):
    report = report_factory()
    updated = report_service.apply_ai_validation(db_session, report.id, 90, "classifier v2")
    # 20 + 0 + 18
    assert updated.consensus_score == 38
    with pytest.raises(ValidationError):
        report_service.apply_ai_validation(db_session, report.id, 120)


def test_concurrent_votes_keep_exact_counts(db_session, user_factory, report_factory):
    report = report_factory()
    upvoters = [user_factory().id for _ in range(8)]
    downvoters = [user_factory().id for _ in range(4)]
    make_session = sessionmaker(bind=db_session.get_bind(), autocommit=False, autoflush=False)
    errors = []

    def vote(user_id, vote_type):
        session = make_session()
        try:
            vote_ledger.cast_vote(session, report.id, user_id, vote_type)
        except Exception as e:  # surfaced through the assertion below
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=vote, args=(u, "upvote")) for u in upvoters]
    threads += [threading.Thread(target=vote, args=(u, "downvote")) for u in downvoters]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    stored = _reload(db_session, report.id)
    assert (stored.upvotes, stored.downvotes) == (8, 4)
    assert stored.version == 1 + len(threads)
    assert db_session.query(Vote).count() == len(threads)


def test_events_follow_commit_order(db_session, user_factory, report_factory):
    report = report_factory()
    events = []
    change_notifier.subscribe(events.append)

    vote_ledger.cast_vote(db_session, report.id, user_factory().id, "upvote")
    verification_ledger.record_verification(db_session, report.id, user_factory().id)
    confirmation_workflow.update_status(db_session, report.id, "verified")

    assert [e["type"] for e in events] == ["report_updated", "report_verified", "report_updated"]
    assert [e["data"]["version"] for e in events] == [2, 3, 4]
    assert events[-1]["data"]["status"] == "verified"


@pytest.fixture()
def stalled_redis_url():
    """A TCP endpoint that accepts connections and never answers."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(8)
    server.settimeout(0.2)
    accepted = []
    stop = threading.Event()

    def accept_forever():
        while not stop.is_set():
            try:
                conn, _ = server.accept()
            except OSError:
                continue
            accepted.append(conn)

    thread = threading.Thread(target=accept_forever, daemon=True)
    thread.start()
    yield f"redis://127.0.0.1:{server.getsockname()[1]}/0"
    stop.set()
    thread.join(1)
    for conn in accepted:
        conn.close()
    server.close()


def test_stalled_redis_mirror_does_not_hold_report_lock(db_session, user_factory, report_factory, stalled_redis_url):
    notifier = ChangeNotifier(redis_url=stalled_redis_url)
    received = []
    notifier.subscribe(received.append)
    report = report_factory()
    voter = user_factory()
    make_session = sessionmaker(bind=db_session.get_bind())
    done = threading.Event()

    def vote():
        session = make_session()
        try:
            vote_ledger.cast_vote(session, report.id, voter.id, "upvote", notifier=notifier)
        finally:
            session.close()
            done.set()

    threading.Thread(target=vote, daemon=True).start()
    try:
        assert done.wait(1.0)
        assert not report_locks.lock_for(report.id).locked()
        assert [m["type"] for m in received] == ["report_updated"]
        assert _reload(db_session, report.id).upvotes == 1

        # the next writer on the same report is not queued behind Redis either
        second = user_factory()
        vote_ledger.cast_vote(db_session, report.id, second.id, "upvote", notifier=notifier)
        assert len(received) == 2
    finally:
        notifier.close(timeout=0.1)
