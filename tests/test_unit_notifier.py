import pytest

from report_trust.services.notifier import ChangeNotifier


def test_publish_reaches_all_subscribers():
    notifier = ChangeNotifier()
    first, second = [], []
    notifier.subscribe(first.append)
    notifier.subscribe(second.append)
    delivered = notifier.publish("report_verified", {"id": "r-1"})
    assert delivered == 2
    assert first == second == [{"type": "report_verified", "data": {"id": "r-1"}}]
    assert notifier.published_count == 1


def test_failing_subscriber_is_dropped():
    notifier = ChangeNotifier()
    received = []

    def broken(message):
        raise RuntimeError("socket gone")

    notifier.subscribe(broken)
    notifier.subscribe(received.append)
    assert notifier.publish("report_updated", {"id": "r-1"}) == 1
    assert notifier.subscriber_count() == 1
    assert notifier.dropped_subscribers == 1

    notifier.publish("report_updated", {"id": "r-1", "version": 3})
    assert len(received) == 2


def test_unsubscribe_stops_delivery():
    notifier = ChangeNotifier()
    received = []
    token = notifier.subscribe(received.append)
    assert notifier.unsubscribe(token) is True
    assert notifier.unsubscribe(token) is False
    notifier.publish("new_report", {"id": "r-2"})
    assert received == []


def test_unknown_event_type_rejected():
    notifier = ChangeNotifier()
    with pytest.raises(ValueError):
        notifier.publish("report_deleted", {})


def test_redis_mirror_failure_does_not_reach_publisher():
    notifier = ChangeNotifier(redis_url="redis://127.0.0.1:1/0")
    received = []
    notifier.subscribe(received.append)
    assert notifier.publish("report_updated", {"id": "r-3"}) == 1
    assert received[0]["data"] == {"id": "r-3"}
    assert notifier.redis_healthy() is False
    assert ChangeNotifier().redis_healthy() is None
    notifier.close(timeout=0.1)
    assert notifier.mirrored_count == 0


def test_without_redis_no_mirror_thread_is_started():
    notifier = ChangeNotifier()
    notifier.publish("new_report", {"id": "r-4"})
    assert notifier._mirror_thread is None
    assert notifier.mirror_backlog() == 0
