"""Launches, forwards output of, and kills the managed server process.

Each launched process gets two forwarding tasks, one per output pipe,
that relay lines to the host's stdout and stderr until the pipe closes.
They never touch shared state, so they need no coordination with the
scheduler.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from serverwarden.constants import PROCESS_STREAM_LIMIT
from serverwarden.errors import ProcessLaunchError
from serverwarden.logging import get_logger

log = get_logger("serverwarden.supervisor.process")


@dataclass
class ChildProcessHandle:
    """A running server process and its output forwarders."""

    process: asyncio.subprocess.Process
    command: list[str]
    forwarders: list[asyncio.Task[None]] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    async def wait(self) -> int:
        """Wait for exit and for both pipes to drain."""
        returncode = await self.process.wait()
        await asyncio.gather(*self.forwarders, return_exceptions=True)
        return returncode


class ProcessSupervisor:
    """Starts and stops the server process.

    Args:
        java_executable: Program used to run the artifact.
        stdout: Sink for the child's standard output.
        stderr: Sink for the child's standard error.
    """

    def __init__(
        self,
        java_executable: str = "java",
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ) -> None:
        self._java = java_executable
        self._stdout = stdout
        self._stderr = stderr

    def build_command(self, artifact_path: Path, memory_gb: int) -> list[str]:
        """Command line with the same minimum and maximum heap size."""
        return [
            self._java,
            "-server",
            f"-Xmx{memory_gb}G",
            f"-Xms{memory_gb}G",
            "-jar",
            str(artifact_path),
            "nogui",
        ]

    async def launch(
        self, install_path: Path, artifact_path: Path, memory_gb: int
    ) -> ChildProcessHandle:
        """Start the server with *install_path* as working directory.

        Raises:
            ProcessLaunchError: the process could not be spawned.
        """
        command = self.build_command(artifact_path, memory_gb)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(install_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=PROCESS_STREAM_LIMIT,
            )
        except OSError as exc:
            log.error("supervisor_launch_failed", command=command, error=str(exc))
            raise ProcessLaunchError(f"Failed to start {command[0]}: {exc}") from exc

        handle = ChildProcessHandle(process=process, command=command)
        handle.forwarders = [
            asyncio.create_task(
                self._forward(process.stdout, self._stdout or sys.stdout),
                name=f"forward-stdout:{process.pid}",
            ),
            asyncio.create_task(
                self._forward(process.stderr, self._stderr or sys.stderr),
                name=f"forward-stderr:{process.pid}",
            ),
        ]
        log.info("supervisor_launched", pid=process.pid, artifact=str(artifact_path))
        return handle

    def terminate(self, handle: ChildProcessHandle) -> None:
        """Kill the process without waiting for it to exit.

        The forwarding tasks finish on their own once the pipes close.
        """
        if not handle.running:
            log.debug("supervisor_already_exited", pid=handle.pid)
            return
        try:
            handle.process.kill()
        except ProcessLookupError:
            log.debug("supervisor_already_exited", pid=handle.pid)
            return
        log.info("supervisor_terminated", pid=handle.pid)

    async def aclose(self, handle: ChildProcessHandle) -> None:
        """Kill the process and wait for it and its forwarders to finish."""
        self.terminate(handle)
        with contextlib.suppress(ProcessLookupError):
            await handle.process.wait()
        for task in handle.forwarders:
            task.cancel()
        await asyncio.gather(*handle.forwarders, return_exceptions=True)

    @staticmethod
    async def _forward(stream: asyncio.StreamReader | None, sink: TextIO) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # readline discards a line longer than the stream limit
                log.warning("supervisor_output_line_dropped", limit=PROCESS_STREAM_LIMIT)
                continue
            if not raw:
                return
            sink.write(raw.decode("utf-8", errors="replace").rstrip("\r\n") + "\n")
            sink.flush()
