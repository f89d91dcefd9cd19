"""Tests for UpdateScheduler.

The resolver and downloader are real; the HTTP client and the process
supervisor are fakes that record every call in one shared event list so
the tests can assert ordering across components.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from serverwarden.errors import HttpConnectionError, ManifestError, ProcessLaunchError
from serverwarden.http.models import HttpResponse
from serverwarden.state import InstalledState, StateStore
from serverwarden.updater.downloader import ArtifactDownloader
from serverwarden.updater.resolver import VersionResolver
from serverwarden.updater.scheduler import CycleStatus, UpdateScheduler

MANIFEST_URL = "https://meta.example/version_manifest.json"
PACKAGE_URL = "https://meta.example/package.json"
ARTIFACT_URL = "http://x/server.jar"
ARTIFACT_NAME = "minecraft_server.jar"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _json(url: str, data: Any) -> HttpResponse:
    return HttpResponse(
        url=url,
        status_code=200,
        headers={"content-type": "application/json"},
        body=json.dumps(data).encode(),
    )


class FakeRemote:
    """Serves the manifest, descriptor and artifact by URL and logs requests."""

    def __init__(self, events: list[tuple[Any, ...]], release: str) -> None:
        self.events = events
        self.fail_with: Exception | None = None
        self.publish(release)

    def publish(self, release: str) -> None:
        self.release = release
        self.descriptor: dict[str, Any] = {
            "id": release,
            "downloads": {"server": {"url": ARTIFACT_URL}},
        }
        self.artifact = f"server-jar-{release}".encode()

    async def get(self, url: str, params: Any = None, headers: Any = None) -> HttpResponse:
        self.events.append(("get", url))
        if self.fail_with is not None:
            raise self.fail_with
        if url == MANIFEST_URL:
            return _json(
                url,
                {
                    "versions": [
                        {"id": "23w40a", "type": "snapshot", "url": "unused"},
                        {"id": self.release, "type": "release", "url": PACKAGE_URL},
                    ]
                },
            )
        if url == PACKAGE_URL:
            return _json(url, self.descriptor)
        if url == ARTIFACT_URL:
            return HttpResponse(
                url=url,
                status_code=200,
                headers={"content-type": "application/octet-stream"},
                body=self.artifact,
            )
        raise AssertionError(f"unexpected URL {url}")

    def gets(self) -> list[str]:
        return [event[1] for event in self.events if event[0] == "get"]


def _make_supervisor(events: list[tuple[Any, ...]]) -> MagicMock:
    """Supervisor mock; launch records the artifact contents it was started with."""
    supervisor = MagicMock()

    async def launch(install_path: Path, artifact_path: Path, memory_gb: int) -> MagicMock:
        events.append(("launch", artifact_path, memory_gb, artifact_path.read_bytes()))
        return MagicMock(name=f"handle-{len(events)}")

    supervisor.launch = AsyncMock(side_effect=launch)
    supervisor.terminate = MagicMock(side_effect=lambda handle: events.append(("terminate",)))
    supervisor.aclose = AsyncMock()
    return supervisor


class Harness:
    def __init__(self, tmp_path: Path, version: str, release: str, interval: float) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.install = tmp_path / "server"
        self.install.mkdir(exist_ok=True)
        self.remote = FakeRemote(self.events, release=release)
        self.supervisor = _make_supervisor(self.events)
        self.store = StateStore(tmp_path / "config.json")
        self.scheduler = UpdateScheduler(
            state=InstalledState(path=str(self.install), version=version, memory_allocation=2),
            store=self.store,
            resolver=VersionResolver(self.remote, MANIFEST_URL),  # type: ignore[arg-type]
            downloader=ArtifactDownloader(self.remote),  # type: ignore[arg-type]
            supervisor=self.supervisor,
            artifact_filename=ARTIFACT_NAME,
            interval=interval,
        )

    @property
    def artifact(self) -> Path:
        return self.install / ARTIFACT_NAME

    async def bootstrap_running(self, installed_jar: bytes = b"old jar") -> None:
        """Bootstrap with the current release already installed and running."""
        self.artifact.write_bytes(installed_jar)
        await self.scheduler.bootstrap()
        self.events.clear()


def _harness(
    tmp_path: Path, version: str = "1.20.1", release: str = "1.20.1", interval: float = 30
) -> Harness:
    return Harness(tmp_path, version=version, release=release, interval=interval)


# ---------------------------------------------------------------------------
# Single cycles
# ---------------------------------------------------------------------------


class TestRunCycle:
    """Tests for run_cycle() and run_cycle_safely()."""

    async def test_up_to_date_cycle_fetches_manifest_only(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()

        result = await h.scheduler.run_cycle()

        assert result.status is CycleStatus.UP_TO_DATE
        assert h.remote.gets() == [MANIFEST_URL]
        assert [event[0] for event in h.events] == ["get"]

    async def test_update_with_running_process_follows_strict_order(
        self, tmp_path: Path
    ) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.publish("1.20.2")

        result = await h.scheduler.run_cycle()

        assert result.status is CycleStatus.UPDATED
        assert result.target_version == "1.20.2"
        assert result.restarted is True
        assert result.steps_completed == ["resolve", "download", "advance_version", "restart"]
        assert h.events == [
            ("get", MANIFEST_URL),
            ("get", PACKAGE_URL),
            ("get", ARTIFACT_URL),
            ("terminate",),
            ("launch", h.artifact, 2, b"server-jar-1.20.2"),
        ]
        assert h.artifact.read_bytes() == b"server-jar-1.20.2"
        assert h.scheduler.state.version == "1.20.2"
        assert json.loads(h.store.path.read_text())["version"] == "1.20.2"

    async def test_second_cycle_against_unchanged_manifest_is_idempotent(
        self, tmp_path: Path
    ) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.publish("1.20.2")
        await h.scheduler.run_cycle()
        h.events.clear()

        result = await h.scheduler.run_cycle()

        assert result.status is CycleStatus.UP_TO_DATE
        assert h.events == [("get", MANIFEST_URL)]

    async def test_missing_downloads_fails_without_side_effects(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.publish("1.20.2")
        h.remote.descriptor = {"id": "1.20.2"}

        result = await h.scheduler.run_cycle_safely()

        assert result.status is CycleStatus.FAILED
        assert "downloads" in (result.error or "")
        assert h.remote.gets() == [MANIFEST_URL, PACKAGE_URL]
        assert h.artifact.read_bytes() == b"old jar"
        assert h.scheduler.state.version == "1.20.1"
        h.supervisor.terminate.assert_not_called()
        assert not h.store.path.exists()

    async def test_run_cycle_propagates_failures(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.publish("1.20.2")
        h.remote.descriptor = {"id": "1.20.2"}

        with pytest.raises(ManifestError):
            await h.scheduler.run_cycle()

    async def test_write_failure_keeps_version_and_process(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        process = h.scheduler.process
        h.remote.publish("1.20.2")
        h.artifact.unlink()
        h.artifact.mkdir()  # a directory where the jar should go makes the write fail

        result = await h.scheduler.run_cycle_safely()

        assert result.status is CycleStatus.FAILED
        assert h.scheduler.state.version == "1.20.1"
        assert h.scheduler.process is process
        h.supervisor.terminate.assert_not_called()

    async def test_network_failure_is_caught(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.fail_with = HttpConnectionError("connection refused")

        result = await h.scheduler.run_cycle_safely()

        assert result.status is CycleStatus.FAILED
        assert result.error == "connection refused"
        assert result.completed_at is not None

    async def test_unexpected_exception_is_caught(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.fail_with = RuntimeError("boom")

        result = await h.scheduler.run_cycle_safely()

        assert result.status is CycleStatus.FAILED
        assert "boom" in (result.error or "")

    async def test_failed_restart_leaves_slot_empty_until_next_cycle(
        self, tmp_path: Path
    ) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        h.remote.publish("1.20.2")
        h.supervisor.launch.side_effect = ProcessLaunchError("java not found")

        failed = await h.scheduler.run_cycle_safely()

        assert failed.status is CycleStatus.FAILED
        assert h.scheduler.process is None
        assert h.scheduler.state.version == "1.20.2"

        h.supervisor.launch.side_effect = None
        h.supervisor.launch.return_value = MagicMock(name="relaunched")
        recovered = await h.scheduler.run_cycle_safely()

        assert recovered.status is CycleStatus.UP_TO_DATE
        assert recovered.launched is True
        assert h.scheduler.process is h.supervisor.launch.return_value


# ---------------------------------------------------------------------------
# Bootstrap
# ---------------------------------------------------------------------------


class TestBootstrap:
    """Tests for the startup cycle."""

    async def test_fresh_install_downloads_then_launches(self, tmp_path: Path) -> None:
        h = _harness(tmp_path, version="", release="1.20.2")

        result = await h.scheduler.bootstrap()

        assert result.status is CycleStatus.UPDATED
        assert result.launched is True
        assert result.restarted is False
        assert h.events == [
            ("get", MANIFEST_URL),
            ("get", PACKAGE_URL),
            ("get", ARTIFACT_URL),
            ("launch", h.artifact, 2, b"server-jar-1.20.2"),
        ]
        assert h.scheduler.process is not None

    async def test_up_to_date_install_launches_existing_artifact(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        h.artifact.write_bytes(b"installed")

        result = await h.scheduler.bootstrap()

        assert result.status is CycleStatus.UP_TO_DATE
        assert result.launched is True
        h.supervisor.launch.assert_awaited_once_with(h.install, h.artifact, 2)

    async def test_missing_artifact_is_fatal(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)

        with pytest.raises(ProcessLaunchError, match="not found"):
            await h.scheduler.bootstrap()

    async def test_launch_failure_is_fatal(self, tmp_path: Path) -> None:
        h = _harness(tmp_path, version="", release="1.20.2")
        h.supervisor.launch.side_effect = ProcessLaunchError("java not found")

        with pytest.raises(ProcessLaunchError):
            await h.scheduler.bootstrap()

    async def test_network_failure_is_fatal(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        h.remote.fail_with = HttpConnectionError("refused")

        with pytest.raises(HttpConnectionError):
            await h.scheduler.bootstrap()


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class TestRunForever:
    """Tests for the periodic loop."""

    async def test_cycles_never_overlap_and_failures_do_not_stop_the_loop(
        self, tmp_path: Path
    ) -> None:
        h = _harness(tmp_path, interval=0.001)
        await h.bootstrap_running()
        timeline: list[tuple[str, int]] = []
        calls = 0

        async def slow_resolve(current_version: str | None) -> None:
            nonlocal calls
            calls += 1
            index = calls
            timeline.append(("start", index))
            await asyncio.sleep(0.02)
            timeline.append(("end", index))
            if index % 2:
                raise HttpConnectionError("flaky network")
            return None

        h.scheduler._resolver.resolve = slow_resolve  # type: ignore[method-assign]

        task = asyncio.create_task(h.scheduler.run_forever())
        while calls < 4:
            await asyncio.sleep(0.01)
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        completed = [event for event in timeline if event[0] == "end"]
        assert len(completed) >= 3
        for position in range(0, len(timeline) - 1, 2):
            assert timeline[position] == ("start", position // 2 + 1)
            assert timeline[position + 1] == ("end", position // 2 + 1)

    async def test_close_stops_current_process(self, tmp_path: Path) -> None:
        h = _harness(tmp_path)
        await h.bootstrap_running()
        handle = h.scheduler.process

        await h.scheduler.close()

        h.supervisor.aclose.assert_awaited_once_with(handle)
        assert h.scheduler.process is None
