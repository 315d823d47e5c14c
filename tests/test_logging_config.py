import logging

import pytest

from parkcore.config.logging_config import PerformanceLogContext, setup_logging
from parkcore.core.exceptions import UserNotFoundException, SpotUnavailableException


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def performance_records(caplog):
    return [r for r in caplog.records if r.name == "performance"]


def test_rejected_check_in_is_not_an_error(engine, caplog):
    caplog.set_level(logging.DEBUG, logger="performance")

    with pytest.raises(UserNotFoundException):
        engine.check_in("nobody", "A1")

    records = performance_records(caplog)
    assert not [r for r in records if r.levelno >= logging.ERROR]
    assert any(r.levelno == logging.WARNING and "REJECTED" in r.getMessage() for r in records)


def test_conflicting_check_in_is_not_an_error(engine, caplog):
    engine.check_in("alice", "A1")
    caplog.set_level(logging.DEBUG, logger="performance")

    with pytest.raises(SpotUnavailableException):
        engine.check_in("bob", "A1")

    assert not [r for r in performance_records(caplog) if r.levelno >= logging.ERROR]


def test_unexpected_failure_is_logged_as_error(caplog):
    caplog.set_level(logging.DEBUG, logger="performance")

    with pytest.raises(RuntimeError):
        with PerformanceLogContext("rebuild index"):
            raise RuntimeError("disk gone")

    errors = [r for r in performance_records(caplog) if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert "disk gone" in errors[0].getMessage()


def test_setup_logging_splits_error_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "engine.log"

    setup_logging(log_level="WARNING", log_file=str(log_file), enable_color=False, logs_dir=str(tmp_path))
    logging.getLogger("parkcore.checkout").debug("fee computed")
    logging.getLogger("parkcore.checkout").error("settlement failed")
    for handler in restore_root_logger.handlers:
        handler.flush()

    engine_text = log_file.read_text(encoding="utf-8")
    errors_text = (tmp_path / "engine_errors.log").read_text(encoding="utf-8")
    assert "settlement failed" in engine_text
    assert "settlement failed" in errors_text
    assert "fee computed" not in errors_text
    assert logging.getLogger("urllib3").level == logging.WARNING
