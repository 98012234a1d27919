"""
Monitoring - Dependency Probes.

============================================================
RESPONSIBILITY
============================================================
Lightweight checks of the collaborators the process depends on.

- StoreProbe: persistent-store connectivity through the narrow
  StoreConnection interface (state / connect / ping)
- SelfProbe: HTTP GET against the process's own liveness route

Probes never raise. Every failure becomes a ProbeResult with
status ERROR, so one failing dependency cannot abort a tick.

============================================================
STATUS MAPPING
============================================================
Store:
- connected and ping ok      -> healthy
- connecting / disconnecting -> unhealthy
- disconnected, ping failure -> error

Self:
- 2xx within timeout         -> healthy
- other HTTP status          -> unhealthy
- timeout, connection error  -> error

============================================================
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import StoreUnavailableError
from .models import ProbeResult, ProbeStatus


logger = logging.getLogger(__name__)


# ============================================================
# STORE CONNECTION INTERFACE
# ============================================================

class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    CONNECTING = "connecting"
    DISCONNECTING = "disconnecting"


class StoreConnection(ABC):
    """Narrow view of the persistent store used by probes and recovery."""

    name: str = "store"

    @property
    @abstractmethod
    def state(self) -> ConnectionState:
        pass

    @abstractmethod
    async def connect(self) -> None:
        """(Re)establish the connection. Raises StoreUnavailableError on failure."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Round-trip check on an established connection."""
        pass

    def describe(self) -> Dict[str, Any]:
        return {}


class SqlAlchemyStoreConnection(StoreConnection):
    """
    StoreConnection over a SQLAlchemy engine.

    Blocking driver calls run in a worker thread so probes do
    not stall the event loop.
    """

    def __init__(self, url: str, engine: Optional[Engine] = None):
        self._engine = engine or create_engine(url, pool_pre_ping=True)
        self._state = ConnectionState.DISCONNECTED

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def engine(self) -> Engine:
        return self._engine

    def _execute_probe(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()

    async def connect(self) -> None:
        self._state = ConnectionState.CONNECTING
        try:
            await asyncio.to_thread(self._execute_probe)
        except SQLAlchemyError as e:
            self._state = ConnectionState.DISCONNECTED
            logger.error(f"Store connection failed: {e}")
            raise StoreUnavailableError(f"Cannot connect to store: {e}", cause=e) from e
        self._state = ConnectionState.CONNECTED
        logger.info("Store connection established")

    async def ping(self) -> bool:
        if self._state != ConnectionState.CONNECTED:
            return False
        try:
            await asyncio.to_thread(self._execute_probe)
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Store ping failed, marking disconnected: {e}")
            self._state = ConnectionState.DISCONNECTED
            return False

    async def close(self) -> None:
        self._state = ConnectionState.DISCONNECTING
        await asyncio.to_thread(self._engine.dispose)
        self._state = ConnectionState.DISCONNECTED

    def describe(self) -> Dict[str, Any]:
        url = self._engine.url
        return {
            "backend": url.get_backend_name(),
            "database": url.database,
            "host": url.host,
        }


# ============================================================
# PROBES
# ============================================================

class DependencyProbe(ABC):
    """A single dependency check."""

    name: str = "dependency"

    @abstractmethod
    async def check(self) -> ProbeResult:
        pass


class StoreProbe(DependencyProbe):
    """Connectivity check of the persistent store."""

    name = "store"

    def __init__(self, connection: StoreConnection):
        self._connection = connection

    @property
    def connection(self) -> StoreConnection:
        return self._connection

    async def check(self) -> ProbeResult:
        started = time.perf_counter()
        try:
            state = self._connection.state
            detail: Dict[str, Any] = {**self._connection.describe(), "connection_state": state.value}

            if state == ConnectionState.CONNECTED:
                alive = await self._connection.ping()
                state = self._connection.state
                detail["connection_state"] = state.value
                if alive:
                    return self._result(ProbeStatus.HEALTHY, started, detail)
                return self._result(ProbeStatus.ERROR, started, detail, "Store ping failed")

            if state in (ConnectionState.CONNECTING, ConnectionState.DISCONNECTING):
                return self._result(ProbeStatus.UNHEALTHY, started, detail, f"Store is {state.value}")

            return self._result(ProbeStatus.ERROR, started, detail, "Store is disconnected")

        except Exception as e:
            logger.error(f"Store probe failed: {e}")
            return self._result(ProbeStatus.ERROR, started, {}, str(e))

    def _result(
        self,
        status: ProbeStatus,
        started: float,
        detail: Dict[str, Any],
        error: Optional[str] = None,
    ) -> ProbeResult:
        return ProbeResult(
            name=self.name,
            status=status,
            latency_ms=(time.perf_counter() - started) * 1000,
            detail=detail,
            error=error,
        )


class SelfProbe(DependencyProbe):
    """
    Bounded-timeout HTTP GET against the local liveness route.

    Also used by the network recovery strategy.
    """

    name = "api"

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def url(self) -> str:
        return self._url

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def check(self) -> ProbeResult:
        started = time.perf_counter()
        detail: Dict[str, Any] = {"url": self._url}
        try:
            session = await self._get_session()
            async with session.get(self._url) as response:
                detail["http_status"] = response.status
                await response.read()
                if 200 <= response.status < 300:
                    status, error = ProbeStatus.HEALTHY, None
                else:
                    status, error = ProbeStatus.UNHEALTHY, f"HTTP {response.status}"
        except asyncio.TimeoutError:
            status, error = ProbeStatus.ERROR, f"Timed out after {self._timeout.total}s"
        except aiohttp.ClientError as e:
            status, error = ProbeStatus.ERROR, f"{type(e).__name__}: {e}"

        if error:
            logger.debug(f"Self probe {self._url}: {error}")

        return ProbeResult(
            name=self.name,
            status=status,
            latency_ms=(time.perf_counter() - started) * 1000,
            detail=detail,
            error=error,
        )
