"""
Monitoring - Request Monitor.

============================================================
RESPONSIBILITY
============================================================
Per-request instrumentation as aiohttp middleware.

- Request id (also returned as X-Request-ID)
- Counter per "METHOD path"
- Response time into a bounded rolling window
- Counter per status code, plus error counters
- Structured request log: every request outside production,
  only errors and slow requests in production

Transport-level failures (handler raised, client went away)
count as errors even though no status was ever sent.

============================================================
"""

import asyncio
import logging
import secrets
import time
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from aiohttp import web

from core.clock import ClockProtocol, SystemClock
from core.json_log import JsonLineLog
from core.ring_buffer import RingBuffer
from .config import RequestMonitorConfig


logger = logging.getLogger(__name__)


TRANSPORT_ERROR = "transport_error"

REQUEST_ID_KEY = web.RequestKey("request_id", str)


@dataclass
class RequestTrace:
    """In-flight request bookkeeping."""

    request_id: str
    method: str
    path: str
    started: float

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000


def _percentile(sorted_values: List[float], fraction: float) -> float:
    if not sorted_values:
        return 0.0
    index = min(int(round(fraction * (len(sorted_values) - 1))), len(sorted_values) - 1)
    return sorted_values[index]


class RequestMonitor:
    """
    Request counters and timers.

    Usage:
        monitor = RequestMonitor(RequestMonitorConfig())
        app = web.Application(middlewares=[monitor.middleware])
    """

    def __init__(
        self,
        config: Optional[RequestMonitorConfig] = None,
        journal: Optional[JsonLineLog] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._config = config or RequestMonitorConfig()
        self._journal = journal
        self._clock = clock or SystemClock()
        self._reset_state()

    def _reset_state(self) -> None:
        self._total = 0
        self._request_counts: Counter = Counter()
        self._status_counts: Counter = Counter()
        self._error_counts: Counter = Counter()
        self._response_times: RingBuffer[float] = RingBuffer(self._config.response_time_history)

    # --------------------------------------------------------
    # MIDDLEWARE
    # --------------------------------------------------------

    @web.middleware
    async def middleware(self, request: web.Request, handler) -> web.StreamResponse:
        trace = self.begin_request(request.method, request.path)
        request[REQUEST_ID_KEY] = trace.request_id

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers["X-Request-ID"] = trace.request_id
            self.finish_request(trace, exc.status, request)
            raise
        except asyncio.CancelledError:
            self.record_transport_error(trace, "Client disconnected", request)
            raise
        except Exception as exc:
            self.record_transport_error(trace, f"{type(exc).__name__}: {exc}", request)
            raise

        if not response.prepared:
            response.headers["X-Request-ID"] = trace.request_id
        self.finish_request(trace, response.status, request)
        return response

    # --------------------------------------------------------
    # RECORDING
    # --------------------------------------------------------

    def begin_request(self, method: str, path: str) -> RequestTrace:
        trace = RequestTrace(
            request_id=f"req_{self._clock.epoch_millis()}_{secrets.token_hex(5)[:9]}",
            method=method,
            path=path,
            started=time.perf_counter(),
        )
        self._total += 1
        self._request_counts[trace.key] += 1
        return trace

    def finish_request(
        self,
        trace: RequestTrace,
        status: int,
        request: Optional[web.Request] = None,
    ) -> float:
        elapsed = trace.elapsed_ms()
        self._response_times.append(elapsed)
        self._status_counts[status] += 1
        if status >= 400:
            self._error_counts[f"error_{status}"] += 1

        if self._should_log(status, elapsed):
            self._log_request(trace, status, elapsed, request)
        return elapsed

    def record_transport_error(
        self,
        trace: RequestTrace,
        error: str,
        request: Optional[web.Request] = None,
    ) -> float:
        elapsed = trace.elapsed_ms()
        self._response_times.append(elapsed)
        self._error_counts[TRANSPORT_ERROR] += 1
        self._log_request(trace, None, elapsed, request, error=error)
        return elapsed

    def _should_log(self, status: int, elapsed_ms: float) -> bool:
        if not self._config.production:
            return True
        return status >= 400 or elapsed_ms > self._config.slow_request_ms

    def _log_request(
        self,
        trace: RequestTrace,
        status: Optional[int],
        elapsed_ms: float,
        request: Optional[web.Request],
        error: Optional[str] = None,
    ) -> None:
        record: Dict[str, Any] = {
            "request_id": trace.request_id,
            "method": trace.method,
            "path": trace.path,
            "status_code": status,
            "response_time_ms": round(elapsed_ms, 2),
        }
        if request is not None:
            record["ip"] = request.remote
            record["user_agent"] = request.headers.get("User-Agent", "unknown")
        if error:
            record["error"] = error

        if error or (status is not None and status >= 500):
            level = "error"
        elif (status is not None and status >= 400) or elapsed_ms > self._config.slow_request_ms:
            level = "warning"
        else:
            level = "info"

        logger.log(
            logging.getLevelName(level.upper()),
            f"{trace.method} {trace.path} {status if status is not None else 'ERR'} {elapsed_ms:.1f}ms",
        )
        if self._journal is not None:
            try:
                self._journal.write(level, "Request completed", event="request", **record)
            except OSError as e:
                logger.error(f"Failed to write request log: {e}")

    # --------------------------------------------------------
    # AGGREGATES
    # --------------------------------------------------------

    @property
    def total_requests(self) -> int:
        return self._total

    def request_counters(self) -> Dict[str, int]:
        return dict(self._request_counts)

    def status_counters(self) -> Dict[int, int]:
        return dict(self._status_counts)

    def error_counters(self) -> Dict[str, int]:
        return dict(self._error_counts)

    def average_response_time(self) -> float:
        times = self._response_times.snapshot()
        return sum(times) / len(times) if times else 0.0

    def error_rate(self) -> float:
        """Percentage of requests that ended in >= 400 or a transport error."""
        if self._total == 0:
            return 0.0
        errors = sum(self._error_counts.values())
        return errors / self._total * 100.0

    def get_request_stats(self) -> Dict[str, Dict[str, int]]:
        """path -> method -> count."""
        stats: Dict[str, Dict[str, int]] = defaultdict(dict)
        for key, count in self._request_counts.items():
            method, _, path = key.partition(" ")
            stats[path][method] = count
        return dict(stats)

    def response_time_distribution(self) -> Dict[str, float]:
        times = self._response_times.snapshot()
        ordered = sorted(times)
        return {
            "current": round(times[-1], 2) if times else 0.0,
            "average": round(self.average_response_time(), 2),
            "min": round(ordered[0], 2) if ordered else 0.0,
            "max": round(ordered[-1], 2) if ordered else 0.0,
            "p50": round(_percentile(ordered, 0.50), 2),
            "p95": round(_percentile(ordered, 0.95), 2),
            "samples": len(times),
        }

    def get_all_metrics(self) -> Dict[str, Any]:
        return {
            "requests": {
                "total": self._total,
                "by_route": self.request_counters(),
                "average_response_time": round(self.average_response_time(), 2),
                "error_rate": round(self.error_rate(), 2),
            },
            "status_codes": {str(code): count for code, count in sorted(self._status_counts.items())},
            "errors": self.error_counters(),
            "response_times": self.response_time_distribution(),
        }

    def reset_metrics(self) -> None:
        self._reset_state()
        logger.info("Request metrics reset")
