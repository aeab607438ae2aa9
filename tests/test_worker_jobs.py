import time

from report_trust.jobs.queue import PriorityDelayQueue
from report_trust.jobs.trust_jobs import ClusteringJob, FakeDetectionJob
from report_trust.jobs.worker import LAST_EXCEPTIONS, LAST_EXCEPTIONS_LIMIT, ClusteringScheduler, TrustWorker
from report_trust.models.db import Report, ReportCluster


def test_report_creation_queues_fake_detection(db_session, report_factory):
    queue = PriorityDelayQueue()
    from report_trust.models.schemas.reports import ReportCreate
    from report_trust.services import report_service

    data = ReportCreate(
        title="Gas smell near school",
        description="Strong gas smell around the school gates since this morning.",
        type="gas_leak",
        severity="medium",
        location="Elm Street School",
    )
    report = report_service.create_report(db_session, data, queue=queue)
    job = queue.dequeue(block=False)
    assert isinstance(job, FakeDetectionJob)
    assert job.report_id == report.id


def test_worker_processes_fake_detection_job(db_session, report_factory):
    report = report_factory()
    worker = TrustWorker(PriorityDelayQueue())
    worker._process(FakeDetectionJob(report_id=report.id))
    assert worker.processed == 1

    db_session.expire_all()
    stored = db_session.get(Report, report.id)
    assert stored.fake_detection_score == 0
    assert stored.fake_detection_flags == []


def test_worker_skips_missing_report():
    LAST_EXCEPTIONS.clear()
    worker = TrustWorker(PriorityDelayQueue())
    worker._process(FakeDetectionJob(report_id="gone"))
    assert worker.processed == 1
    assert not LAST_EXCEPTIONS


def test_worker_processes_clustering_job(db_session, user_factory, report_factory):
    for i in range(2):
        report_factory(user_factory(), latitude=40.7128 + i * 0.001)
    worker = TrustWorker(PriorityDelayQueue())
    worker._process(ClusteringJob())
    assert db_session.query(ReportCluster).count() == 1


def test_worker_thread_drains_queue(db_session, report_factory):
    report = report_factory()
    queue = PriorityDelayQueue()
    worker = TrustWorker(queue, poll_timeout=0.05)
    queue.enqueue(FakeDetectionJob(report_id=report.id))
    worker.start()
    try:
        deadline = time.time() + 5
        while worker.processed < 1 and time.time() < deadline:
            time.sleep(0.05)
    finally:
        worker.stop()
    assert worker.processed == 1
    db_session.expire_all()
    assert db_session.get(Report, report.id).fake_detection_score == 0


def test_scheduler_tick_deduplicates():
    queue = PriorityDelayQueue()
    scheduler = ClusteringScheduler(queue, interval_seconds=60)
    assert scheduler.enabled
    assert scheduler.tick() is True
    assert scheduler.tick() is False
    assert queue.depth() == 1
    assert isinstance(queue.dequeue(block=False), ClusteringJob)

    assert ClusteringScheduler(queue, interval_seconds=0).enabled is False


def test_failed_job_log_is_bounded():
    LAST_EXCEPTIONS.clear()
    worker = TrustWorker(PriorityDelayQueue())
    for _ in range(LAST_EXCEPTIONS_LIMIT + 10):
        worker._process(ClusteringJob(limit=0))
    assert worker.processed == LAST_EXCEPTIONS_LIMIT + 10
    assert len(LAST_EXCEPTIONS) == LAST_EXCEPTIONS_LIMIT
    assert LAST_EXCEPTIONS[-1]["type"] == "ValidationError"
    LAST_EXCEPTIONS.clear()
