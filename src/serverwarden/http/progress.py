"""Periodic download progress notifications for binary responses."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass

from serverwarden.logging import get_logger

log = get_logger("serverwarden.http.progress")


@dataclass(frozen=True)
class DownloadProgress:
    """Snapshot of a running download.

    ``percent`` is ``None`` while the total size is unknown and becomes 100
    only once the response is complete.
    """

    url: str
    received: int
    total: int | None
    percent: int | None
    done: bool = False


ProgressCallback = Callable[[DownloadProgress], None]


def log_progress(progress: DownloadProgress) -> None:
    """Default progress sink."""
    if progress.done:
        log.info("http_download_complete", url=progress.url, bytes=progress.received)
    else:
        log.info(
            "http_download_progress",
            url=progress.url,
            percent=progress.percent,
            received=progress.received,
            total=progress.total,
        )


class ProgressTicker:
    """Samples a byte counter on a fixed cadence until stopped.

    The first sample is emitted immediately. Reported percentages never
    decrease and stay below 100 until :meth:`stop` is called with
    ``completed=True``, which emits exactly one final 100% notification.
    """

    def __init__(
        self,
        url: str,
        total: int | None,
        sample: Callable[[], int],
        callback: ProgressCallback,
        interval: float,
    ) -> None:
        self._url = url
        self._total = total or None
        self._sample = sample
        self._callback = callback
        self._interval = interval
        self._last_percent = 0
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"progress:{self._url}")

    async def stop(self, completed: bool) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if completed:
            self._last_percent = 100
            self._callback(
                DownloadProgress(
                    url=self._url,
                    received=self._sample(),
                    total=self._total,
                    percent=100,
                    done=True,
                )
            )

    def snapshot(self) -> DownloadProgress:
        received = self._sample()
        percent: int | None = None
        if self._total is not None:
            # 100 is reserved for the completion notification
            current = min(received * 100 // self._total, 99)
            self._last_percent = max(self._last_percent, current)
            percent = self._last_percent
        return DownloadProgress(
            url=self._url, received=received, total=self._total, percent=percent
        )

    async def _run(self) -> None:
        while True:
            self._callback(self.snapshot())
            await asyncio.sleep(self._interval)
