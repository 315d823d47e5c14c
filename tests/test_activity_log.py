import logging
from unittest.mock import Mock

from parkcore.core.constants import ActionCode
from parkcore.monitoring.activity_log import InMemoryActivityLog, AuditTrail
from tests.conftest import FakeClock, build_engine


def test_user_logs_newest_first():
    clock = FakeClock()
    log = InMemoryActivityLog(clock=clock)
    log.log("alice", "CHECK_IN", "Spot: A1")
    clock.advance(minutes=5)
    log.log("bob", "CHECK_IN", "Spot: A2")
    clock.advance(minutes=5)
    log.log("alice", "CHECK_OUT", "Checked out")

    entries = log.get_user_logs("alice")

    assert [e.action for e in entries] == ["CHECK_OUT", "CHECK_IN"]
    assert [e.actor_id for e in log.get_recent(2)] == ["alice", "bob"]


def test_entries_mirrored_to_event_logger(caplog):
    event_logger = logging.getLogger("test_events")
    log = InMemoryActivityLog(event_logger=event_logger)

    with caplog.at_level(logging.INFO, logger="test_events"):
        log.log("alice", "CHECK_IN", "Spot: A1")

    assert "alice | CHECK_IN | Spot: A1" in caplog.text


def test_bounded_history():
    log = InMemoryActivityLog(max_entries=3)
    for i in range(5):
        log.log("alice", "CHECK_IN", f"Spot: {i}")

    assert [e.details for e in log.get_recent()] == ["Spot: 4", "Spot: 3", "Spot: 2"]


def test_audit_trail_swallows_sink_failures():
    memory = InMemoryActivityLog()
    broken = Mock()
    broken.log.side_effect = ConnectionError("audit store down")
    trail = AuditTrail([broken, memory])

    trail.record("alice", ActionCode.CHECK_IN, "Spot: A1")

    assert trail.failures == 1
    assert memory.get_user_logs("alice")[0].action == "CHECK_IN"


def test_engine_operations_survive_broken_audit(engine_config, clock):
    broken = Mock()
    broken.log.side_effect = RuntimeError("boom")
    engine = build_engine(engine_config, clock, extra_sinks=[broken])

    session = engine.check_in("alice", "A1")
    clock.advance(minutes=15)
    result = engine.check_out(session.id)

    assert result.payment.is_success()
    assert engine.audit.failures == 3
    assert engine.get_status()["audit_failures"] == 3
