"""Update scheduler: the control loop of Serverwarden.

One cycle is::

    resolve -> [new release] download -> advance version -> restart

Cycles run strictly one after another on the event loop: the next sleep
starts only after the previous cycle, including any restart, has finished.
The scheduler is the only writer of the installed state and of the
current-process slot.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from serverwarden.constants import DEFAULT_ARTIFACT_FILENAME, UPDATE_INTERVAL_SECONDS
from serverwarden.errors import ProcessLaunchError, ServerWardenError
from serverwarden.logging import get_logger
from serverwarden.state import InstalledState, StateStore
from serverwarden.supervisor import ChildProcessHandle, ProcessSupervisor
from serverwarden.updater.downloader import ArtifactDownloader
from serverwarden.updater.resolver import VersionResolver
from serverwarden.utils import timed_operation

log = get_logger("serverwarden.updater.scheduler")


class CycleStatus(Enum):
    """Outcome of one update cycle."""

    UP_TO_DATE = "up_to_date"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class CycleResult:
    """What one update cycle did."""

    status: CycleStatus
    current_version: str
    target_version: str | None = None
    restarted: bool = False
    launched: bool = False
    error: str | None = None
    steps_completed: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "current_version": self.current_version,
            "target_version": self.target_version,
            "restarted": self.restarted,
            "launched": self.launched,
            "error": self.error,
            "steps_completed": self.steps_completed,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "duration_ms": self.duration_ms,
        }


class UpdateScheduler:
    """Drives resolver, downloader and supervisor on a fixed interval.

    Typical use::

        await scheduler.bootstrap()     # failures here are fatal
        await scheduler.run_forever()   # failures here are logged
    """

    def __init__(
        self,
        state: InstalledState,
        store: StateStore,
        resolver: VersionResolver,
        downloader: ArtifactDownloader,
        supervisor: ProcessSupervisor,
        artifact_filename: str = DEFAULT_ARTIFACT_FILENAME,
        interval: float = UPDATE_INTERVAL_SECONDS,
    ) -> None:
        self._state = state
        self._store = store
        self._resolver = resolver
        self._downloader = downloader
        self._supervisor = supervisor
        self._artifact_filename = artifact_filename
        self._interval = interval
        self._process: ChildProcessHandle | None = None
        self._bootstrapped = False

    @property
    def state(self) -> InstalledState:
        return self._state

    @property
    def process(self) -> ChildProcessHandle | None:
        return self._process

    @property
    def artifact_path(self) -> Path:
        return self._state.artifact_path(self._artifact_filename)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def bootstrap(self) -> CycleResult:
        """Run the startup cycle and launch the server.

        Unlike scheduled cycles, every failure here propagates to the
        caller, which treats it as fatal.
        """
        result = await self.run_cycle()
        if self._process is None:
            await self._launch()
            result.launched = True
        self._bootstrapped = True
        return result

    async def run_forever(self) -> None:
        """Sleep, run a cycle, repeat. Never returns on its own."""
        log.info("updater_polling_started", interval=self._interval)
        while True:
            await asyncio.sleep(self._interval)
            await self.run_cycle_safely()

    async def run_cycle(self) -> CycleResult:
        """Run one cycle, letting any failure propagate."""
        result = CycleResult(status=CycleStatus.UP_TO_DATE, current_version=self._state.version)
        async with timed_operation("updater_cycle_timing", log=log) as timing:
            await self._execute(result)
        self._complete(result, timing["elapsed_ms"])
        log.info("updater_cycle_complete", **result.to_dict())
        return result

    async def run_cycle_safely(self) -> CycleResult:
        """Run one cycle; failures are logged and reported in the result."""
        result = CycleResult(status=CycleStatus.UP_TO_DATE, current_version=self._state.version)
        async with timed_operation("updater_cycle_timing", log=log) as timing:
            try:
                await self._execute(result)
            except ServerWardenError as exc:
                result.status = CycleStatus.FAILED
                result.error = str(exc)
                log.warning(
                    "updater_cycle_failed", error_type=type(exc).__name__, **result.to_dict()
                )
            except Exception as exc:
                result.status = CycleStatus.FAILED
                result.error = f"Unexpected error: {exc}"
                log.exception("updater_cycle_unexpected_error", **result.to_dict())
        self._complete(result, timing["elapsed_ms"])
        if result.status is not CycleStatus.FAILED:
            log.info("updater_cycle_complete", **result.to_dict())
        return result

    async def close(self) -> None:
        """Stop the current server process, if any."""
        if self._process is not None:
            handle, self._process = self._process, None
            await self._supervisor.aclose(handle)

    # ------------------------------------------------------------------
    # Cycle steps
    # ------------------------------------------------------------------

    async def _execute(self, result: CycleResult) -> None:
        package = await self._resolver.resolve(self._state.version or None)
        result.steps_completed.append("resolve")

        if package is None:
            if self._bootstrapped and self._process is None:
                await self._launch()
                result.launched = True
            return

        result.target_version = package.id
        await self._downloader.download(package.server_url, self.artifact_path)
        result.steps_completed.append("download")

        self._advance_version(package.id)
        result.steps_completed.append("advance_version")
        result.status = CycleStatus.UPDATED

        if self._process is not None:
            await self._restart()
            result.restarted = True
            result.steps_completed.append("restart")
        elif self._bootstrapped:
            await self._launch()
            result.launched = True

    def _advance_version(self, version: str) -> None:
        previous = self._state.version
        self._state.version = version
        self._store.save(self._state)
        log.info("updater_version_advanced", previous=previous, version=version)

    async def _restart(self) -> None:
        log.info("updater_restarting", version=self._state.version)
        old = self._process
        if old is not None:
            self._supervisor.terminate(old)
        # Slot stays empty if the relaunch fails; the next cycle retries
        self._process = None
        await self._launch()

    async def _launch(self) -> None:
        artifact = self.artifact_path
        if not artifact.is_file():
            raise ProcessLaunchError(f"Server artifact not found: {artifact}")
        self._process = await self._supervisor.launch(
            self._state.install_path, artifact, self._state.memory_allocation
        )

    @staticmethod
    def _complete(result: CycleResult, elapsed_ms: float) -> None:
        result.completed_at = datetime.now(UTC).isoformat()
        result.duration_ms = elapsed_ms
