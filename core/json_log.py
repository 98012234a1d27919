"""
Core Module - JSON Line Log.

============================================================
RESPONSIBILITY
============================================================
Durable journal shared by the monitoring and audit services.

- One JSON object per line, appended
- Size-based rotation: a file above the limit is renamed with a
  timestamp suffix and a fresh file is started
- Tail reads for administrative history queries

============================================================
DESIGN PRINCIPLES
============================================================
- Append and rotate share one lock, so a line is never written
  into a file that is being renamed
- Write errors propagate; callers decide whether to swallow them
- Unparseable lines are skipped on read

============================================================
"""

import json
import logging
import os
import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from core.clock import ClockProtocol, SystemClock, to_iso8601


logger = logging.getLogger(__name__)


DEFAULT_MAX_BYTES = 10 * 1024 * 1024


class JsonLineLog:
    """
    Append-only JSON-lines file with size rotation.

    Usage:
        journal = JsonLineLog("logs/monitoring.log", service="monitoring")
        journal.write("info", "Health check completed", status="healthy")
        journal.rotate_if_needed()
    """

    def __init__(
        self,
        path: Union[str, Path],
        service: str,
        max_bytes: int = DEFAULT_MAX_BYTES,
        clock: Optional[ClockProtocol] = None,
    ):
        if max_bytes <= 0:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        self._path = Path(path)
        self._service = service
        self._max_bytes = max_bytes
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def service(self) -> str:
        return self._service

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    # --------------------------------------------------------
    # WRITE
    # --------------------------------------------------------

    def append(self, record: Dict[str, Any]) -> None:
        """Append one record as a single JSON line."""
        line = json.dumps(record, default=str) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line)

    def write(
        self,
        level: str,
        message: str,
        event: Optional[str] = None,
        **data: Any,
    ) -> Dict[str, Any]:
        """Build a structured record and append it."""
        record: Dict[str, Any] = {
            "timestamp": to_iso8601(self._clock.now()),
            "level": level,
            "message": message,
            "service": self._service,
        }
        if event:
            record["event"] = event
        record["data"] = data
        self.append(record)
        return record

    # --------------------------------------------------------
    # ROTATION
    # --------------------------------------------------------

    def size_bytes(self) -> int:
        try:
            return self._path.stat().st_size
        except FileNotFoundError:
            return 0

    def rotate_if_needed(self) -> Optional[Path]:
        """
        Rotate the file when it exceeds ``max_bytes``.

        Returns:
            Path of the rotated backup, or None when no rotation happened
        """
        with self._lock:
            if self.size_bytes() <= self._max_bytes:
                return None
            suffix = self._clock.now().strftime("%Y-%m-%dT%H-%M-%S-%fZ")
            backup = self._path.with_name(f"{self._path.stem}-{suffix}{self._path.suffix}")
            os.replace(self._path, backup)

        logger.info(f"Rotated {self._path} -> {backup}")
        return backup

    # --------------------------------------------------------
    # READ
    # --------------------------------------------------------

    def read_tail(
        self,
        limit: int = 100,
        predicate: Optional[Callable[[Dict[str, Any]], bool]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Read the last ``limit`` matching records, oldest first.

        Only the current file is read, not rotated backups.
        """
        if limit <= 0:
            return []
        matched: Deque[Dict[str, Any]] = deque(maxlen=limit)
        with self._lock:
            if not self._path.exists():
                return []
            with open(self._path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if predicate is None or predicate(record):
                        matched.append(record)
        return list(matched)
