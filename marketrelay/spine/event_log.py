"""
Event Log - JSONL record of delivered relay events.

Output:
  <log_dir>/YYYY-MM-DD/events.jsonl

The date directory follows the UTC receive time of each record, so a
long-running listener rolls over to a new file at midnight.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, TextIO

from marketrelay.core.events import EventPayload

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventLogWriter:
    """Appends one JSON line per delivered event to the current day's file."""

    def __init__(self, log_dir: Path | str, clock: Clock = _utc_now):
        self._log_dir = Path(log_dir)
        self._clock = clock
        self._path: Path | None = None
        self._file: TextIO | None = None
        self._lines_written = 0

    @property
    def path(self) -> Path:
        """File of the last record, or today's file before the first one."""
        return self._path or self.path_for(self._clock())

    @property
    def lines_written(self) -> int:
        return self._lines_written

    def path_for(self, when: datetime) -> Path:
        return self._log_dir / when.strftime("%Y-%m-%d") / "events.jsonl"

    def open(self) -> None:
        self._file_for(self._clock())

    def _file_for(self, when: datetime) -> TextIO:
        path = self.path_for(when)
        if self._file is None or path != self._path:
            self.close()
            path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(path, "a", encoding="utf-8")
            self._path = path
            logger.info(f"[EVENT_LOG] Writing to {path}")
        return self._file

    def record(self, event: str, payload: EventPayload) -> bool:
        """Write one delivered event. Returns False if it could not be serialized."""
        now = self._clock()
        try:
            line = json.dumps(
                {"received_at": now.isoformat(), "event": event, **payload.to_dict()},
                default=str,
            )
        except (TypeError, ValueError) as e:
            logger.warning(f"[EVENT_LOG] Failed to serialize record: {e}")
            return False

        file = self._file_for(now)
        file.write(line + "\n")
        file.flush()
        self._lines_written += 1
        return True

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
