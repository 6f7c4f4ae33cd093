"""Startup supervisor for the auto-apply due-check.

Runs the due-check once after application start, after a short delay so
startup is never blocked, retrying transient failures with a fixed back-off
and guarding each attempt with a timeout. Only one run is in flight at a
time; concurrent callers share it.

State machine::

    IDLE -> SCHEDULED -> RUNNING -> SUCCEEDED | EXHAUSTED

A timed-out attempt is cancelled at its next suspension point, but any
write it already issued stands.
"""

import asyncio
import time
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Protocol

import structlog

from recurring_autoapply.config import get_settings, set_component_logging
from recurring_autoapply.errors import (
    AlreadyRunningError,
    AutoApplyTimeoutError,
    ExhaustedRetriesError,
)
from recurring_autoapply.notifications import NotificationCenter, Notifier, NullNotifier
from recurring_autoapply.results import AutoApplyResult, StartupResult

logger = structlog.get_logger(__name__)

COMPONENT = "startup_supervisor"


class StartupState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class DueCheckRunner(Protocol):
    """Anything that runs a tenant-bound due-check, e.g. ``AutoApplyService``."""

    async def check_and_apply_due_transactions(self) -> AutoApplyResult: ...


@dataclass
class StartupConfig:
    """Supervisor behaviour. Times are in milliseconds.

    ``enable_logging=False`` mutes this component through the processor
    chain installed by ``configure_logging``.
    """

    enabled: bool = True
    delay_ms: int = 2000
    max_retries: int = 3
    retry_delay_ms: int = 5000
    timeout_ms: int = 30000
    enable_logging: bool = True
    enable_notifications: bool = True
    skip_on_error: bool = True

    def __post_init__(self) -> None:
        if self.delay_ms < 0 or self.retry_delay_ms < 0:
            raise ValueError("Delays cannot be negative")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.timeout_ms < 1:
            raise ValueError("timeout_ms must be at least 1")

    @classmethod
    def from_settings(cls) -> "StartupConfig":
        settings = get_settings()
        return cls(
            enabled=settings.startup_enabled,
            delay_ms=settings.startup_delay_ms,
            max_retries=settings.startup_max_retries,
            retry_delay_ms=settings.startup_retry_delay_ms,
            timeout_ms=settings.startup_timeout_ms,
            enable_logging=settings.startup_logging,
            enable_notifications=settings.startup_notifications,
            skip_on_error=settings.startup_skip_on_error,
        )

    def updated(self, **changes: Any) -> "StartupConfig":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown startup settings: {', '.join(sorted(unknown))}")
        return replace(self, **changes)


def _count_text(count: int) -> str:
    return f"{count} recurring transaction{'s' if count != 1 else ''}"


class StartupSupervisor:
    """Delayed, retried, single-flight execution of the due-check."""

    def __init__(
        self,
        runner: DueCheckRunner,
        config: StartupConfig | None = None,
        notifier: Notifier | None = None,
        log: structlog.stdlib.BoundLogger | None = None,
    ):
        self._runner = runner
        self._config = config or StartupConfig.from_settings()
        self._notifier: Notifier = notifier or NullNotifier()
        self._logger = log or logger.bind(component=COMPONENT)
        set_component_logging(COMPONENT, self._config.enable_logging)

        self._state = StartupState.IDLE
        self._task: asyncio.Task[StartupResult] | None = None
        self._last_result: StartupResult | None = None

    @property
    def state(self) -> StartupState:
        return self._state

    @property
    def last_result(self) -> StartupResult | None:
        return self._last_result

    @property
    def is_executing(self) -> bool:
        return self._task is not None and not self._task.done()

    # === Entry points ===

    async def initialize_on_startup(self) -> StartupResult | None:
        """Schedule the startup check and wait for it.

        Returns ``None`` when disabled, or when every attempt failed and
        ``skip_on_error`` is set. Raises ``ExhaustedRetriesError`` when
        every attempt failed and ``skip_on_error`` is off.
        """
        if not self._config.enabled:
            self._logger.info("startup_auto_apply_disabled")
            return None

        if self._task is not None and not self._task.done():
            self._logger.warning("startup_auto_apply_already_in_progress", state=self._state.value)
        else:
            self._logger.info("startup_auto_apply_scheduled", delay_ms=self._config.delay_ms)
            self._state = StartupState.SCHEDULED
            self._task = asyncio.create_task(self._delayed_run(self._config.delay_ms))

        result = await asyncio.shield(self._task)
        if result.success:
            return result
        if self._config.skip_on_error:
            self._logger.error(
                "startup_auto_apply_skipped", error=str(result.error), retry_count=result.retry_count
            )
            return None
        raise ExhaustedRetriesError(result.retry_count + 1, result.error) from result.error

    async def execute_with_retry(self) -> StartupResult:
        """Run the due-check now, or join the run already in flight."""
        if self._task is not None and not self._task.done():
            return await asyncio.shield(self._task)
        self._task = asyncio.create_task(self._run_with_retry())
        return await asyncio.shield(self._task)

    async def trigger_manual_check(self) -> StartupResult:
        """User-initiated check. Refuses, rather than queues, while a run is in flight."""
        if self._task is not None and not self._task.done():
            raise AlreadyRunningError()
        self._logger.info("manual_check_triggered")
        return await self.execute_with_retry()

    # === Configuration and status ===

    def get_config(self) -> StartupConfig:
        return replace(self._config)

    def update_config(self, **changes: Any) -> StartupConfig:
        self._config = self._config.updated(**changes)
        set_component_logging(COMPONENT, self._config.enable_logging)
        self._logger.info("startup_config_updated", **changes)
        return replace(self._config)

    def get_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "is_executing": self.is_executing,
            "last_result": self._last_result.summary() if self._last_result else None,
            "config": {f.name: getattr(self._config, f.name) for f in fields(self._config)},
        }

    # === Run loop ===

    async def _delayed_run(self, delay_ms: int) -> StartupResult:
        try:
            await asyncio.sleep(delay_ms / 1000)
        except asyncio.CancelledError:
            self._state = StartupState.IDLE
            raise
        return await self._run_with_retry()

    async def _run_with_retry(self) -> StartupResult:
        config = self._config
        started = time.monotonic()
        last_error: Exception | None = None
        self._state = StartupState.RUNNING

        try:
            for attempt in range(config.max_retries + 1):
                self._logger.info(
                    "startup_attempt", attempt=attempt + 1, max_attempts=config.max_retries + 1
                )
                try:
                    result = await self._run_once(config.timeout_ms)
                except Exception as e:
                    last_error = e
                    self._logger.warning(
                        "startup_attempt_failed",
                        attempt=attempt + 1,
                        max_retries=config.max_retries,
                        error=str(e),
                    )
                    if attempt < config.max_retries:
                        self._logger.info("startup_retry_scheduled", retry_delay_ms=config.retry_delay_ms)
                        await asyncio.sleep(config.retry_delay_ms / 1000)
                    continue

                startup_result = StartupResult(
                    success=True,
                    result=result,
                    retry_count=attempt,
                    execution_time_ms=_elapsed_ms(started),
                )
                self._last_result = startup_result
                self._state = StartupState.SUCCEEDED
                self._summarize(result, startup_result.execution_time_ms, config)
                return startup_result

            startup_result = StartupResult(
                success=False,
                error=last_error,
                retry_count=config.max_retries,
                execution_time_ms=_elapsed_ms(started),
            )
            self._last_result = startup_result
            self._state = StartupState.EXHAUSTED
            self._report_failure(startup_result, config)
            return startup_result
        finally:
            if self._state == StartupState.RUNNING:
                self._state = StartupState.IDLE

    async def _run_once(self, timeout_ms: int) -> AutoApplyResult:
        try:
            async with asyncio.timeout(timeout_ms / 1000) as deadline:
                return await self._runner.check_and_apply_due_transactions()
        except TimeoutError as e:
            # A TimeoutError raised by the runner itself is not ours to relabel
            if not deadline.expired():
                raise
            raise AutoApplyTimeoutError("Auto-apply", timeout_ms) from e

    # === Summaries ===

    def _summarize(self, result: AutoApplyResult, execution_time_ms: int, config: StartupConfig) -> None:
        self._logger.info(
            "startup_auto_apply_completed",
            applied=result.applied_count,
            failed=result.failed_count,
            pending=result.pending_count,
            total_processed=result.total_processed,
            execution_time_ms=execution_time_ms,
        )

        if result.total_processed == 0:
            self._logger.info("no_due_recurring_transactions")
            return
        if not config.enable_notifications:
            return

        if result.applied_count > 0:
            self._notifier.show_success(f"{_count_text(result.applied_count)} applied automatically")
        if result.failed_count > 0:
            self._notifier.show_error(f"{_count_text(result.failed_count)} failed to apply")
        if result.pending_count > 0:
            self._notifier.show_info(f"{_count_text(result.pending_count)} require manual approval")

    def _report_failure(self, startup_result: StartupResult, config: StartupConfig) -> None:
        self._logger.error(
            "startup_auto_apply_failed",
            error=str(startup_result.error),
            retry_count=startup_result.retry_count,
            max_retries=config.max_retries,
            execution_time_ms=startup_result.execution_time_ms,
        )
        if config.enable_notifications and not config.skip_on_error:
            self._notifier.show_error("Failed to check recurring transactions on startup")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def create_startup_supervisor(
    runner: DueCheckRunner,
    notification_center: NotificationCenter,
    **config: Any,
) -> StartupSupervisor:
    """Build a supervisor that notifies through ``notification_center``."""
    base = StartupConfig.from_settings()
    return StartupSupervisor(
        runner,
        config=base.updated(**config) if config else base,
        notifier=notification_center,
    )
