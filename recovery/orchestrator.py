"""
Recovery - Orchestrator.

============================================================
RESPONSIBILITY
============================================================
Runs bounded-retry recovery strategies, one at a time.

- Registry keyed by FailureType, populated once at initialize()
- At most one recovery in flight; a concurrent request is
  rejected immediately, never queued
- Exactly one RecoveryAttempt recorded per run
- Linear backoff between failed attempts, awaited so other
  requests keep being served

============================================================
CONCURRENCY
============================================================
The in-progress flag is tested and set with no await in
between, which is sufficient on a single event loop. It is
cleared in ``finally`` so a crashing run cannot wedge recovery.

============================================================
"""

import asyncio
import logging
import secrets
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from core.clock import ClockProtocol, SystemClock
from core.exceptions import ResilienceError
from core.json_log import JsonLineLog
from core.ring_buffer import RingBuffer
from .config import RecoveryConfig
from .models import AttemptResult, FailureType, RecoveryAttempt, StrategyOutcome
from .strategies import RecoveryStrategy


logger = logging.getLogger(__name__)


class RecoveryOrchestrator:
    """
    Failure-type keyed recovery runner.

    Usage:
        orchestrator = RecoveryOrchestrator(RecoveryConfig())
        orchestrator.initialize([StoreRecoveryStrategy(...), ...])
        ok = await orchestrator.attempt_recovery("store", error, {"source": "health_check"})
    """

    def __init__(
        self,
        config: Optional[RecoveryConfig] = None,
        clock: Optional[ClockProtocol] = None,
        journal: Optional[JsonLineLog] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._config = config or RecoveryConfig()
        self._clock = clock or SystemClock()
        self._journal = journal
        self._sleep = sleep

        self._strategies: Dict[FailureType, RecoveryStrategy] = {}
        self._initialized = False
        self._in_progress = False
        self._current: Optional[FailureType] = None
        self._history: RingBuffer[RecoveryAttempt] = RingBuffer(self._config.history_capacity)

    # --------------------------------------------------------
    # SETUP
    # --------------------------------------------------------

    def initialize(self, strategies: Iterable[RecoveryStrategy]) -> None:
        """Populate the strategy registry. Later calls are ignored."""
        if self._initialized:
            logger.warning("RecoveryOrchestrator already initialized, ignoring")
            return

        for strategy in strategies:
            if strategy.failure_type in self._strategies:
                raise ValueError(f"Duplicate strategy for {strategy.failure_type.value}")
            self._strategies[strategy.failure_type] = strategy

        self._initialized = True
        logger.info(
            f"RecoveryOrchestrator initialized with strategies: "
            f"{', '.join(ft.value for ft in self._strategies)}"
        )

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def config(self) -> RecoveryConfig:
        return self._config

    def get_strategy(self, failure_type: Union[str, FailureType]) -> Optional[RecoveryStrategy]:
        parsed = FailureType.parse(failure_type)
        return self._strategies.get(parsed) if parsed else None

    # --------------------------------------------------------
    # RECOVERY
    # --------------------------------------------------------

    def is_recovery_in_progress(self) -> bool:
        return self._in_progress

    async def attempt_recovery(
        self,
        failure_type: Union[str, FailureType],
        error: Optional[BaseException] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Run recovery for ``failure_type``. True iff it succeeded."""
        attempt = await self.recover(failure_type, error, context)
        return attempt is not None and attempt.success

    async def recover(
        self,
        failure_type: Union[str, FailureType],
        error: Optional[BaseException] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[RecoveryAttempt]:
        """
        Run recovery and return the recorded attempt.

        Returns None, recording nothing, when another recovery is
        in progress or no strategy exists for ``failure_type``.
        """
        label = failure_type.value if isinstance(failure_type, FailureType) else str(failure_type)

        if self._in_progress:
            logger.warning(
                f"Recovery already in progress ({self._current.value if self._current else '?'}), "
                f"rejecting {label}"
            )
            return None

        strategy = self.get_strategy(failure_type)
        if strategy is None:
            logger.error(
                f"No recovery strategy for failure type: {label}. "
                f"Available: {', '.join(ft.value for ft in self._strategies)}"
            )
            return None

        self._in_progress = True
        self._current = strategy.failure_type
        recovery_id = self._generate_recovery_id()
        context = dict(context or {})

        logger.info(f"Starting recovery {recovery_id} for {label} with {strategy.name}")
        try:
            try:
                outcome = await self.execute_recovery_strategy(strategy, error, context)
            except Exception as e:
                logger.exception(f"Recovery {recovery_id} crashed: {e}")
                outcome = StrategyOutcome(
                    success=False,
                    attempts_used=0,
                    results=(AttemptResult(0, False, "Recovery crashed", error=str(e)),),
                )
            attempt = self._record(recovery_id, strategy, outcome, error)
        finally:
            self._in_progress = False
            self._current = None

        if attempt.success:
            logger.info(f"Recovery {recovery_id} succeeded after {attempt.attempt_number} attempt(s)")
            self._write_journal("info", "Recovery successful", "recovery_succeeded", attempt, error)
        else:
            logger.error(
                f"Recovery {recovery_id} failed after {attempt.attempt_number} attempt(s): "
                f"manual intervention required for {label}"
            )
            self._write_journal(
                "critical",
                "Max retry attempts reached, manual intervention required",
                "manual_intervention_required",
                attempt,
                error,
            )
        return attempt

    async def execute_recovery_strategy(
        self,
        strategy: RecoveryStrategy,
        error: Optional[BaseException],
        context: Mapping[str, Any],
    ) -> StrategyOutcome:
        """
        Sequential attempts with linear backoff, stopping at first success.

        An attempt that raises a non-recoverable ResilienceError ends
        the run without further attempts.
        """
        results: List[AttemptResult] = []

        for attempt_number in range(1, strategy.max_attempts + 1):
            logger.info(f"{strategy.name} attempt {attempt_number}/{strategy.max_attempts}")
            try:
                result = await strategy.attempt(error, context, attempt_number)
                attempt_result = AttemptResult(
                    attempt_number=attempt_number,
                    success=result.success,
                    message=result.message,
                    details=dict(result.details),
                )
            except Exception as e:
                logger.warning(f"{strategy.name} attempt {attempt_number} raised: {e}")
                attempt_result = AttemptResult(
                    attempt_number=attempt_number,
                    success=False,
                    message="Attempt raised",
                    error=f"{type(e).__name__}: {e}",
                )
                if isinstance(e, ResilienceError) and not e.is_recoverable:
                    logger.error(f"{strategy.name} hit a non-recoverable error, giving up: {e}")
                    results.append(attempt_result)
                    return StrategyOutcome(False, attempt_number, tuple(results))

            results.append(attempt_result)
            if attempt_result.success:
                return StrategyOutcome(True, attempt_number, tuple(results))

            if attempt_number < strategy.max_attempts:
                await self._sleep(strategy.policy.backoff_seconds(attempt_number))

        return StrategyOutcome(False, len(results), tuple(results))

    # --------------------------------------------------------
    # HISTORY
    # --------------------------------------------------------

    def _record(
        self,
        recovery_id: str,
        strategy: RecoveryStrategy,
        outcome: StrategyOutcome,
        error: Optional[BaseException],
    ) -> RecoveryAttempt:
        attempt = RecoveryAttempt(
            id=recovery_id,
            failure_type=strategy.failure_type,
            strategy_name=strategy.name,
            attempt_number=outcome.attempts_used,
            max_attempts=strategy.max_attempts,
            success=outcome.success,
            detail=outcome.last_message,
            timestamp=self._clock.now(),
            error=str(error) if error else None,
            results=outcome.results,
        )
        self._history.append(attempt)
        return attempt

    def get_history(self) -> List[RecoveryAttempt]:
        """All retained attempts, oldest first."""
        return self._history.snapshot()

    def get_recovery_history(self, limit: int = 10) -> Dict[str, Any]:
        attempts = self._history.snapshot()
        successful = sum(1 for a in attempts if a.success)
        return {
            "total": len(attempts),
            "successful": successful,
            "failed": len(attempts) - successful,
            "recent": [a.to_dict() for a in attempts[-limit:]] if limit > 0 else [],
        }

    def get_recovery_stats(self) -> Dict[str, Dict[str, int]]:
        stats: Dict[str, Dict[str, int]] = defaultdict(lambda: {"total": 0, "successful": 0, "failed": 0})
        for attempt in self._history:
            entry = stats[attempt.failure_type.value]
            entry["total"] += 1
            if attempt.success:
                entry["successful"] += 1
            else:
                entry["failed"] += 1
        return dict(stats)

    def clear_recovery_history(self) -> None:
        self._history.clear()
        logger.info("Recovery history cleared")

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_recovering": self._in_progress,
            "current": self._current.value if self._current else None,
            "strategies": [s.describe() for s in self._strategies.values()],
            "history": self.get_recovery_history(),
            "stats": self.get_recovery_stats(),
        }

    # --------------------------------------------------------
    # INTERNALS
    # --------------------------------------------------------

    def _generate_recovery_id(self) -> str:
        return f"rec_{self._clock.epoch_millis()}_{secrets.token_hex(5)[:9]}"

    def _write_journal(
        self,
        level: str,
        message: str,
        event: str,
        attempt: RecoveryAttempt,
        error: Optional[BaseException] = None,
    ) -> None:
        if self._journal is None:
            return
        data = attempt.to_dict()
        if isinstance(error, ResilienceError):
            data["error_detail"] = error.to_dict()
        try:
            self._journal.write(level, message, event=event, **data)
        except OSError as e:
            logger.error(f"Failed to write recovery journal: {e}")
