"""
Monitoring - Metrics Source.

============================================================
RESPONSIBILITY
============================================================
Reads process-level runtime statistics: memory, cpu, uptime.

Memory percent is the process resident set size relative to
total physical memory, which is what the resource guard and the
memory recovery strategy compare against their ceilings.

============================================================
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Optional

import psutil

from .models import MemoryStats, RuntimeMetrics


logger = logging.getLogger(__name__)


_MB = 1024 * 1024


class MetricsSource(ABC):
    """Interface for runtime metrics readers."""

    @abstractmethod
    def read(self) -> RuntimeMetrics:
        """Take one reading."""
        pass

    def memory_percent(self) -> float:
        return self.read().memory.percent


class ProcessMetricsSource(MetricsSource):
    """
    psutil-backed metrics for the current process.

    cpu_percent is measured since the previous reading, so the
    first reading after construction is primed and returns 0.
    """

    def __init__(self, process: Optional[psutil.Process] = None):
        self._process = process or psutil.Process(os.getpid())
        self._process.cpu_percent(interval=None)

    def read(self) -> RuntimeMetrics:
        with self._process.oneshot():
            rss = self._process.memory_info().rss
            cpu = self._process.cpu_percent(interval=None)
            created = self._process.create_time()

        total = psutil.virtual_memory().total
        percent = (rss / total * 100.0) if total else 0.0

        return RuntimeMetrics(
            memory=MemoryStats(
                used_mb=rss / _MB,
                total_mb=total / _MB,
                percent=percent,
            ),
            cpu_percent=cpu,
            uptime_seconds=max(time.time() - created, 0.0),
            pid=self._process.pid,
        )

    def memory_percent(self) -> float:
        total = psutil.virtual_memory().total
        if not total:
            return 0.0
        return self._process.memory_info().rss / total * 100.0
