#!/usr/bin/env python3
"""
Event Logger for monitor, alert, diagnosis and remediation records
Writes append-only daily log files and prunes them by age.

Every line looks like ``[YYYY-MM-DD HH:MM:SS] [LEVEL] message``.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path

ACTION = 25
DIAGNOSIS = 22
ALERT = 45

logging.addLevelName(ACTION, "ACTION")
logging.addLevelName(DIAGNOSIS, "DIAGNOSIS")
logging.addLevelName(ALERT, "ALERT")

LINE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


class EventFormatter(logging.Formatter):
    """Line formatter for the event files; WARNING is written as WARN"""

    def format(self, record):
        if record.levelno == logging.WARNING:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = "WARN"
        return super().format(record)


def daily_log_path(directory, prefix, day=None):
    """Return <directory>/<prefix>-YYYYMMDD.log for the given day"""
    day = day or datetime.now()
    return Path(directory) / f"{prefix}-{day.strftime('%Y%m%d')}.log"


def prune_old_logs(directory, pattern, max_age_days, now=None):
    """Delete files matching pattern whose mtime is older than max_age_days"""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    cutoff = (now if now is not None else time.time()) - max_age_days * 86400
    removed = []
    for path in directory.glob(pattern):
        try:
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink()
                removed.append(path)
        except OSError as e:
            logger.warning(f"Could not prune {path}: {e}")
    if removed:
        logger.debug(f"Pruned {len(removed)} old file(s) from {directory}")
    return removed


class EventLogger:
    """One persistent sink: a dedicated logger bound to today's file"""

    def __init__(self, name, path, echo=False):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(f"noc.{name}")
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        self._handlers = []

        formatter = EventFormatter(LINE_FORMAT, datefmt=DATE_FORMAT)
        file_handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        self._add_handler(file_handler)
        if echo:
            stream_handler = logging.StreamHandler(sys.stdout)
            stream_handler.setFormatter(formatter)
            self._add_handler(stream_handler)

    def _add_handler(self, handler):
        self.logger.addHandler(handler)
        self._handlers.append(handler)

    def info(self, message):
        self.logger.info(message)

    def warn(self, message):
        self.logger.warning(message)

    def error(self, message):
        self.logger.error(message)

    def action(self, message):
        self.logger.log(ACTION, message)

    def diagnosis(self, message):
        self.logger.log(DIAGNOSIS, message)

    def alert(self, message):
        self.logger.log(ALERT, message)

    def read_lines(self):
        """Return the lines currently in the file (flushes first)"""
        for handler in self._handlers:
            handler.flush()
        try:
            return self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

    def close(self):
        for handler in self._handlers:
            handler.close()
            self.logger.removeHandler(handler)
        self._handlers = []


class MonitorSinks:
    """The three sinks a monitor cycle writes to"""

    def __init__(self, config, echo=True, day=None):
        self.config = config
        self.monitor = EventLogger("monitor", daily_log_path(config["log_dir"], "monitor", day), echo=echo)
        self.alerts = EventLogger("alert", daily_log_path(config["alert_dir"], "alerts", day))
        self.diagnosis = EventLogger("diagnosis", daily_log_path(config["diag_dir"], "diagnosis", day))

    def create_alert(self, message):
        self.alerts.alert(message)
        self.monitor.error(f"ALERT: {message}")

    def prune(self, now=None):
        removed = prune_old_logs(self.config["alert_dir"], "alerts-*.log",
                                 self.config["alert_retention_days"], now)
        removed += prune_old_logs(self.config["diag_dir"], "diagnosis-*.log",
                                  self.config["diagnosis_retention_days"], now)
        return removed

    def close(self):
        for sink in (self.monitor, self.alerts, self.diagnosis):
            sink.close()
