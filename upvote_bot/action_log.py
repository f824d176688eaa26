"""
Action Log
==========
Durable audit trail of every decision the bot makes.

Two files live under the log directory:
    YYYY-MM-DD.jsonl         one per UTC day, newest `retention_days` kept
    dispenser-actions.jsonl  append-only dispenser lifecycle record
"""

import re
import json
import logging
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger("ActionLog")

DAILY_FILE = re.compile(r"^\d{4}-\d{2}-\d{2}\.jsonl$")


def _utcnow():
    return datetime.now(timezone.utc)


class ActionLog:
    def __init__(self, log_dir, retention_days=7, clock: Callable[[], datetime] = _utcnow):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.retention_days = max(1, retention_days)
        self._clock = clock
        self._current_date = None
        self._current_file = None

    def _log_file(self) -> Path:
        today = self._clock().strftime("%Y-%m-%d")
        if self._current_file is not None and self._current_date == today:
            return self._current_file

        self._current_date = today
        self._current_file = self.log_dir / f"{today}.jsonl"
        self._prune(keep=self._current_file.name)
        return self._current_file

    def _prune(self, keep):
        """Drop daily files beyond the retention window (today counts as one)."""
        try:
            daily = sorted(
                p.name for p in self.log_dir.iterdir()
                if DAILY_FILE.match(p.name) and p.name != keep
            )
            excess = len(daily) - (self.retention_days - 1)
            for name in daily[:max(0, excess)]:
                (self.log_dir / name).unlink()
                logger.info(f"🧹 Cleaned up old log file: {name}")
        except OSError as e:
            logger.error(f"Error cleaning up old logs: {e}")

    def write(self, entry: dict):
        record = dict(entry)
        record.setdefault("timestamp", int(self._clock().timestamp() * 1000))
        record.setdefault("level", "info")
        try:
            with open(self._log_file(), "a", encoding="utf-8") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError as e:
            logger.error(f"Error writing to log file: {e}")

    def info(self, type_, **fields):
        self.write({"type": type_, "level": "info", **fields})

    def warning(self, type_, **fields):
        self.write({"type": type_, "level": "warn", **fields})

    def error(self, type_, exc: Optional[BaseException] = None, **fields):
        entry = {"type": type_, "level": "error", **fields}
        if exc is not None:
            entry["error"] = str(exc)
            entry["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self.write(entry)


class DispenserLog:
    """Append-only record of dispenser-specific actions."""

    def __init__(self, path, clock: Callable[[], datetime] = _utcnow):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        self._clock = clock

    def record(self, action, **data):
        entry = {
            "timestamp": self._clock().isoformat().replace("+00:00", "Z"),
            "action": action,
            **data,
        }
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.error(f"Error writing to dispenser log: {e}")


def read_records(path) -> list:
    """Load every record of a JSONL log file; [] when it does not exist."""
    path = Path(path)
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
