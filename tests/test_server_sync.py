import threading
import time
from unittest.mock import Mock

import pytest
import requests

from parkcore.config.settings import EngineConfig
from parkcore.monitoring.activity_log import AuditTrail
from parkcore.sync.server_sync import RemoteActivitySink
from tests.conftest import FakeClock, build_engine


def make_response(status_code):
    response = Mock()
    response.status_code = status_code
    return response


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def http():
    session = Mock()
    session.headers = {}
    session.post.return_value = make_response(201)
    session.get.return_value = make_response(200)
    return session


@pytest.fixture
def sink_config():
    return EngineConfig(SYNC_SERVER_URL="http://parking.example:5000/", MAX_RETRY_ATTEMPTS=2,
                        OFFLINE_QUEUE_SIZE=3, BATCH_SYNC_SIZE=2)


@pytest.fixture
def fast_config():
    return EngineConfig(SYNC_SERVER_URL="http://parking.example:5000/", SYNC_INTERVAL=0.02,
                        HEALTH_CHECK_INTERVAL=0.02)


def test_log_only_enqueues(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)

    sink.log("alice", "CHECK_IN", "Spot: A1")

    http.post.assert_not_called()
    assert sink.get_queue_size() == 1


def test_single_entry_posted_as_json(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, clock=FakeClock(), start_worker=False)
    sink.log("alice", "CHECK_IN", "Spot: A1")

    assert sink.flush_offline_queue() == 1

    url = http.post.call_args[0][0]
    payload = http.post.call_args[1]["json"]
    assert url == "http://parking.example:5000/api/activity"
    assert payload["actor_id"] == "alice"
    assert payload["action"] == "CHECK_IN"
    assert payload["created_at"] == "2025-01-06T09:00:00+00:00"
    assert http.headers["Content-Type"] == "application/json"
    assert sink.stats["entries_sent"] == 1
    assert sink.get_queue_size() == 0


def test_default_session_retries_through_adapter(sink_config):
    sink = RemoteActivitySink(sink_config, start_worker=False)

    adapter = sink.session.get_adapter("http://parking.example:5000/api/activity")

    assert isinstance(adapter, requests.adapters.HTTPAdapter)
    assert adapter.max_retries.total == 2
    sink.close()


def test_unreachable_server_keeps_entry_queued(http, sink_config):
    http.post.side_effect = requests.ConnectionError("connection refused")
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    sink.log("alice", "CHECK_IN", "Spot: A1")

    assert sink.flush_offline_queue() == 0

    assert http.post.call_count == 1
    assert sink.is_connected is False
    assert sink.get_queue_size() == 1
    assert sink.stats["failed_requests"] == 1


def test_error_status_counts_as_failure(http, sink_config):
    http.post.return_value = make_response(500)
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    sink.log("alice", "CHECK_OUT")

    sink.flush_offline_queue()

    assert sink.is_connected is False
    assert sink.get_queue_size() == 1


def test_offline_queue_is_bounded(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)

    for i in range(5):
        sink.log("alice", "CHECK_IN", f"Spot: {i}")

    assert sink.get_queue_size() == 3
    assert sink.stats["queue_overflows"] == 2
    assert [p["details"] for p in sink.offline_queue] == ["Spot: 2", "Spot: 3", "Spot: 4"]


def test_flush_delivers_in_batches(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    for i in range(3):
        sink.log("bob", "CHECK_IN", f"Spot: {i}")

    delivered = sink.flush_offline_queue()

    assert delivered == 3
    assert sink.get_queue_size() == 0
    assert http.post.call_count == 2
    first_batch = http.post.call_args_list[0]
    assert first_batch[0][0].endswith("/api/activity/bulk")
    assert len(first_batch[1]["json"]["entries"]) == 2


def test_disconnected_sink_waits_for_health_interval(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    sink.log("bob", "CHECK_IN")
    sink.is_connected = False
    sink.last_health_check = time.time()

    assert sink.run_pending() == 0
    http.get.assert_not_called()

    sink.last_health_check = 0.0
    assert sink.run_pending() == 1
    assert sink.is_connected is True
    assert sink.get_queue_size() == 0


def test_health_check_toggles_connectivity(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    sink.is_connected = False

    assert sink.check_health() is True

    http.get.side_effect = requests.ConnectionError("down")
    assert sink.check_health() is False


def test_check_in_is_not_delayed_by_unreachable_server(http, fast_config, clock):
    attempted = threading.Event()

    def slow_refusal(*args, **kwargs):
        attempted.set()
        time.sleep(0.5)
        raise requests.ConnectionError("connection refused")

    http.post.side_effect = slow_refusal
    http.get.side_effect = requests.ConnectionError("connection refused")
    sink = RemoteActivitySink(fast_config, session=http)
    engine = build_engine(EngineConfig(LOCATION_NAME="Test Garage"), clock, extra_sinks=[sink])

    started = time.monotonic()
    session = engine.check_in("alice", "A1")
    elapsed = time.monotonic() - started

    assert session.spot_id == "A1"
    assert elapsed < 0.25
    assert attempted.wait(2.0)
    engine.close()


def test_worker_recovers_and_drains_queue(http, fast_config):
    server_up = threading.Event()

    def post(*args, **kwargs):
        if not server_up.is_set():
            raise requests.ConnectionError("connection refused")
        return make_response(201)

    def get(*args, **kwargs):
        if not server_up.is_set():
            raise requests.ConnectionError("connection refused")
        return make_response(200)

    http.post.side_effect = post
    http.get.side_effect = get
    sink = RemoteActivitySink(fast_config, session=http)

    sink.log("alice", "CHECK_IN", "Spot: A1")
    sink.log("alice", "CHECK_OUT", "Spot: A1")
    assert wait_until(lambda: sink.stats["failed_requests"] >= 1)
    assert sink.get_queue_size() == 2

    server_up.set()

    assert wait_until(lambda: sink.get_queue_size() == 0)
    assert sink.is_connected is True
    assert sink.stats["entries_sent"] == 2
    assert sink.stats["health_checks"] >= 1
    sink.close()


def test_close_flushes_remaining_entries(http, sink_config):
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    sink.log("carol", "RESERVE")

    sink.close()

    assert sink.stop_event.is_set()
    assert sink.get_queue_size() == 0
    http.post.assert_called_once()
    http.close.assert_called_once()


def test_sink_never_raises_into_audit_trail(http, sink_config):
    http.post.side_effect = requests.ConnectionError("down")
    sink = RemoteActivitySink(sink_config, session=http, start_worker=False)
    trail = AuditTrail([sink])

    trail.record("alice", "CHECK_IN", "Spot: A1")
    sink.flush_offline_queue()

    assert trail.failures == 0
    assert sink.get_queue_size() == 1
