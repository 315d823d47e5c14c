"""
Logging Configuration
Console, rotating file and dedicated audit/sync loggers for the parking engine
"""

import os
import logging
import logging.handlers
from datetime import datetime
from typing import Optional

import colorlog

from parkcore.core.exceptions import ParkingEngineException

DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
DEFAULT_FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

LEVEL_COLORS = {
    'DEBUG': 'cyan',
    'INFO': 'green',
    'WARNING': 'yellow',
    'ERROR': 'red',
    'CRITICAL': 'red,bg_white',
}


def _console_handler(level: int, log_format: str, enable_color: bool) -> logging.Handler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    if enable_color:
        handler.setFormatter(colorlog.ColoredFormatter(
            '%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt=DATE_FORMAT,
            log_colors=LEVEL_COLORS
        ))
    else:
        handler.setFormatter(logging.Formatter(log_format, datefmt=DATE_FORMAT))
    return handler


def _rotating_handler(path: str, level: int, formatter: logging.Formatter,
                      max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_color: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    logs_dir: str = "logs"
) -> logging.Logger:
    """
    Route engine logs to the terminal and to rotating files under logs_dir

    The engine log file always records DEBUG; a sibling `<name>_errors.log`
    keeps only ERROR and above so failed settlements and CAS exhaustion are
    easy to find. The terminal follows log_level.

    Args:
        log_level: threshold for the terminal (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: engine log path; defaults to a dated file in logs_dir
        log_format: file record layout
        enable_color: colorize terminal output with colorlog
        max_bytes: rotate a file once it grows past this size
        backup_count: rotated files kept per log
        logs_dir: directory that receives the default log files

    Returns:
        The root logger, reconfigured
    """
    os.makedirs(logs_dir, exist_ok=True)
    if log_file is None:
        log_file = os.path.join(logs_dir, f"parking_engine_{datetime.now().strftime('%Y%m%d')}.log")
    elif os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    log_format = log_format or DEFAULT_FILE_FORMAT
    level = getattr(logging, log_level.upper())
    file_formatter = logging.Formatter(log_format, datefmt=DATE_FORMAT)
    errors_file = f"{os.path.splitext(log_file)[0]}_errors.log"

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(_console_handler(level, log_format, enable_color))
    root.addHandler(_rotating_handler(log_file, logging.DEBUG, file_formatter, max_bytes, backup_count))
    root.addHandler(_rotating_handler(errors_file, logging.ERROR, file_formatter, max_bytes, backup_count))

    # HTTP client chatter from the activity sink
    for name in ("urllib3", "requests"):
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"🅿️ Engine logging ready: level={log_level.upper()}, file={log_file}, errors={errors_file}")
    root.debug(f"Rotation at {max_bytes/1024/1024:.1f}MB keeping {backup_count} files, "
               f"color {'on' if enable_color else 'off'}")

    return root


def setup_logging_from_config(engine_config) -> logging.Logger:
    """Setup logging from an EngineConfig instance"""
    return setup_logging(
        log_level=engine_config.LOG_LEVEL,
        log_file=engine_config.LOG_FILE,
        log_format=engine_config.LOG_FORMAT,
        max_bytes=engine_config.LOG_MAX_BYTES,
        backup_count=engine_config.LOG_BACKUP_COUNT,
        logs_dir=engine_config.LOGS_DIR,
    )


def _dedicated_logger(name: str, logs_dir: str, record_format: str, level: int,
                      max_bytes: int, backup_count: int) -> logging.Logger:
    """Non-propagating logger writing to its own dated file"""
    dedicated = logging.getLogger(name)

    if not dedicated.handlers:
        os.makedirs(logs_dir, exist_ok=True)
        path = os.path.join(logs_dir, f"{name}_{datetime.now().strftime('%Y%m%d')}.log")
        dedicated.addHandler(_rotating_handler(
            path, level, logging.Formatter(record_format, datefmt=DATE_FORMAT), max_bytes, backup_count
        ))
        dedicated.setLevel(level)
        dedicated.propagate = False

    return dedicated


def get_event_logger(logs_dir: str = "logs") -> logging.Logger:
    """Get dedicated event logger for audit entries"""
    return _dedicated_logger('events', logs_dir, '%(asctime)s - EVENT - %(message)s',
                             logging.INFO, 10 * 1024 * 1024, 5)


def get_sync_logger(logs_dir: str = "logs") -> logging.Logger:
    """Get dedicated sync logger for remote activity delivery"""
    return _dedicated_logger('sync', logs_dir, '%(asctime)s - SYNC - %(levelname)s - %(message)s',
                             logging.DEBUG, 5 * 1024 * 1024, 3)


class PerformanceLogContext:
    """
    Times an engine operation

    Engine exceptions are expected outcomes (unknown spot, conflict, bad
    input) and are logged at WARNING; anything else is an ERROR.
    """

    def __init__(self, operation_name: str, logger: Optional[logging.Logger] = None):
        self.operation_name = operation_name
        self.logger = logger or logging.getLogger('performance')
        self.start_time = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.debug(f"START - {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.debug(f"COMPLETE - {self.operation_name} - Duration: {duration:.3f}s")
        elif issubclass(exc_type, ParkingEngineException):
            self.logger.warning(f"REJECTED - {self.operation_name} - Duration: {duration:.3f}s - {exc_val}")
        else:
            self.logger.error(f"ERROR - {self.operation_name} - Duration: {duration:.3f}s - Error: {exc_val}")
