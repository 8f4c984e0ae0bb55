import logging

import pytest
import redis

import announcements


def test_drain_returns_oldest_first():
    announcements.publish(announcements.student_event("A"))
    announcements.publish(announcements.student_event("B"))
    announcements.publish(announcements.warning_event("A"))

    first = announcements.drain(limit=2)
    rest = announcements.drain()

    assert [(e["type"], e["enrollment_number"]) for e in first] == [
        ("student", "A"),
        ("student", "B"),
    ]
    assert [e["type"] for e in rest] == ["warning"]
    assert announcements.pending_count() == 0


def test_student_event_message():
    event = announcements.student_event("2021007")

    assert event["message"] == "Enrollment number 2021007, please proceed for viva"
    assert event["timestamp"]


def test_pending_queue_is_bounded():
    for i in range(announcements.MAX_PENDING + 5):
        announcements.publish(announcements.student_event(str(i)))

    assert announcements.pending_count() == announcements.MAX_PENDING
    assert announcements.drain(limit=1)[0]["enrollment_number"] == "5"


class ListRedis:
    """Just the list commands the announcement queue uses."""

    def __init__(self):
        self.lists = {}

    def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    def ltrim(self, key, start, end):
        self.lists[key] = self.lists.get(key, [])[start:end + 1]
        return True

    def rpop(self, key):
        items = self.lists.get(key)
        return items.pop() if items else None

    def llen(self, key):
        return len(self.lists.get(key, []))

    def delete(self, key):
        return 1 if self.lists.pop(key, None) is not None else 0

    def ping(self):
        return True


class DownRedis:
    def __getattr__(self, name):
        def refuse(*args, **kwargs):
            raise redis.ConnectionError("Error 111 connecting to localhost:6390. Connection refused.")

        return refuse


@pytest.fixture
def use_redis(monkeypatch):
    def install(client):
        monkeypatch.setattr(announcements, "REDIS_URL", "redis://localhost:6390/0")
        monkeypatch.setattr(announcements, "_redis_client", client)
        return client

    return install


def test_redis_backend_pushes_and_pops_oldest_first(use_redis):
    client = use_redis(ListRedis())

    announcements.publish(announcements.student_event("A"))
    announcements.publish(announcements.warning_event("A"))

    assert client.llen(announcements.ANNOUNCEMENT_KEY) == 2
    events = announcements.drain()
    assert [(e["type"], e["enrollment_number"]) for e in events] == [
        ("student", "A"),
        ("warning", "A"),
    ]
    assert announcements.pending_count() == 0


def test_redis_backend_keeps_newest_events(use_redis):
    use_redis(ListRedis())

    for i in range(announcements.MAX_PENDING + 5):
        announcements.publish(announcements.student_event(str(i)))

    assert announcements.pending_count() == announcements.MAX_PENDING
    assert announcements.drain(limit=1)[0]["enrollment_number"] == "5"


def test_publish_while_redis_down_drops_event(use_redis, caplog):
    use_redis(DownRedis())

    with caplog.at_level(logging.WARNING, logger="announcements"):
        delivered = announcements.publish(announcements.student_event("A"))

    assert delivered is False
    assert "Dropped student announcement for A" in caplog.text
    assert len(announcements._local_queue) == 0
    assert announcements.drain() == []
    assert announcements.pending_count() is None
    assert announcements.redis_status() == "unavailable"


def test_events_from_outage_are_not_stranded(use_redis):
    use_redis(DownRedis())
    announcements.publish(announcements.student_event("A"))

    use_redis(ListRedis())
    announcements.publish(announcements.student_event("B"))

    assert [e["enrollment_number"] for e in announcements.drain()] == ["B"]
    assert len(announcements._local_queue) == 0


def test_redis_client_uses_timeouts(monkeypatch):
    calls = []

    def fake_from_url(url, **kwargs):
        calls.append((url, kwargs))
        return ListRedis()

    monkeypatch.setattr(announcements, "REDIS_URL", "redis://localhost:6390/0")
    monkeypatch.setattr(announcements, "_redis_client", None)
    monkeypatch.setattr(announcements.redis, "from_url", fake_from_url)

    first = announcements.get_redis()
    second = announcements.get_redis()

    assert first is second
    assert len(calls) == 1
    url, kwargs = calls[0]
    assert url == "redis://localhost:6390/0"
    assert kwargs["socket_connect_timeout"] == announcements.REDIS_TIMEOUT_SECONDS
    assert kwargs["socket_timeout"] == announcements.REDIS_TIMEOUT_SECONDS
