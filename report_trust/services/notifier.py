"""In-process change notifier (publish/subscribe).

One event per completed report mutation is delivered to every subscriber as
``{"type": <event>, "data": <payload>}``. Delivery is fire-and-forget and
at-most-once: no retries, no buffering for absent subscribers. A subscriber
whose callback raises is dropped; it must resubscribe and recover with a full
read.

When ``NOTIFIER_SETTINGS["redis_url"]`` is configured each message is also
published to a Redis channel so other processes can follow the stream. The
publisher only enqueues the message; a dedicated mirror thread drains the
queue in order and talks to Redis, so a slow or stalled Redis never holds up
a report mutation. Redis failures are logged and never reach the publisher.
"""
from __future__ import annotations

import itertools
import json
import queue
import threading
from typing import Any, Callable, Dict, Optional

import redis

from report_trust.config import NOTIFIER_SETTINGS
from report_trust.models.db.enums import ChangeEventType
from report_trust.utils import get_logger

logger = get_logger(__name__)

Subscriber = Callable[[Dict[str, Any]], None]

_STOP = object()


def _redis_client(url: str) -> redis.Redis:
    connect_timeout = float(NOTIFIER_SETTINGS.get("redis_health_check_timeout") or 2.0)  # type: ignore[arg-type]
    socket_timeout = float(NOTIFIER_SETTINGS.get("redis_socket_timeout") or 2.0)  # type: ignore[arg-type]
    return redis.from_url(url, socket_connect_timeout=connect_timeout, socket_timeout=socket_timeout)


class ChangeNotifier:
    def __init__(self, *, redis_url: Optional[str] = None, redis_channel: Optional[str] = None) -> None:
        self._subscribers: dict[int, Subscriber] = {}
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._redis_url = redis_url
        self._redis_channel = redis_channel or str(NOTIFIER_SETTINGS["redis_channel"])
        self._redis_client: Optional[redis.Redis] = None
        self._mirror_queue: "queue.Queue[Any]" = queue.Queue(
            maxsize=int(NOTIFIER_SETTINGS.get("redis_mirror_buffer") or 1000)  # type: ignore[arg-type]
        )
        self._mirror_thread: Optional[threading.Thread] = None
        self.published_count = 0
        self.dropped_subscribers = 0
        self.mirrored_count = 0
        self.mirror_dropped = 0

    # ----------------------------- subscriptions ----------------------------- #
    def subscribe(self, callback: Subscriber) -> int:
        with self._lock:
            token = next(self._tokens)
            self._subscribers[token] = callback
        logger.debug("Subscriber registered", token=token)
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._lock:
            removed = self._subscribers.pop(token, None) is not None
        if removed:
            logger.debug("Subscriber removed", token=token)
        return removed

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # ------------------------------- publishing ------------------------------ #
    def publish(self, event_type: ChangeEventType | str, data: Dict[str, Any]) -> int:
        """Deliver an event to current subscribers. Returns the number reached.

        Never blocks on the network: the Redis copy is queued for the mirror
        thread.
        """
        message = {"type": ChangeEventType(event_type).value, "data": data}
        with self._lock:
            targets = list(self._subscribers.items())
            self.published_count += 1
        delivered = 0
        for token, callback in targets:
            try:
                callback(message)
                delivered += 1
            except Exception as e:
                self.unsubscribe(token)
                self.dropped_subscribers += 1
                logger.warning(
                    "Dropping failing subscriber",
                    token=token,
                    event_type=message["type"],
                    error=str(e),
                )
        self._queue_for_redis(message)
        return delivered

    # ------------------------------ redis mirror ----------------------------- #
    def _queue_for_redis(self, message: Dict[str, Any]) -> None:
        if not self._redis_url:
            return
        self._ensure_mirror_thread()
        try:
            self._mirror_queue.put_nowait(message)
        except queue.Full:
            self.mirror_dropped += 1
            logger.warning("Redis mirror backlog full; dropping event", event_type=message["type"])

    def _ensure_mirror_thread(self) -> None:
        with self._lock:
            if self._mirror_thread is not None and self._mirror_thread.is_alive():
                return
            self._mirror_thread = threading.Thread(target=self._drain_mirror, name="redis-mirror", daemon=True)
            self._mirror_thread.start()
        logger.info("Redis event mirror started", channel=self._redis_channel)

    def _drain_mirror(self) -> None:
        while True:
            message = self._mirror_queue.get()
            try:
                if message is _STOP:
                    return
                self._mirror_to_redis(message)
            finally:
                self._mirror_queue.task_done()

    def _mirror_to_redis(self, message: Dict[str, Any]) -> None:
        try:
            if self._redis_client is None:
                self._redis_client = _redis_client(self._redis_url)  # type: ignore[arg-type]
            self._redis_client.publish(self._redis_channel, json.dumps(message, default=str))
            self.mirrored_count += 1
        except (redis.RedisError, ConnectionError, OSError) as e:
            # best effort: the in-process channel already delivered
            self._redis_client = None
            logger.warning("Redis event mirror failed", channel=self._redis_channel, error=str(e))

    def mirror_backlog(self) -> int:
        return self._mirror_queue.qsize()

    def close(self, timeout: float = 5.0) -> None:
        """Stop the mirror thread after it drains what is already queued."""
        thread = self._mirror_thread
        if thread is None or not thread.is_alive():
            return
        self._mirror_queue.put(_STOP)
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Redis event mirror did not stop in time", backlog=self.mirror_backlog())

    def redis_healthy(self) -> Optional[bool]:
        """None when mirroring is disabled, else whether Redis answers a ping."""
        if not self._redis_url:
            return None
        try:
            return bool(_redis_client(self._redis_url).ping())
        except (redis.RedisError, ConnectionError, OSError) as e:
            logger.warning("Redis health check failed", error=str(e))
            return False

    def reset(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self.published_count = 0
            self.dropped_subscribers = 0


change_notifier = ChangeNotifier(
    redis_url=NOTIFIER_SETTINGS.get("redis_url"),  # type: ignore[arg-type]
    redis_channel=NOTIFIER_SETTINGS.get("redis_channel"),  # type: ignore[arg-type]
)

__all__ = ["ChangeNotifier", "change_notifier", "Subscriber"]
