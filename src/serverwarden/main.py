"""Main entry point for Serverwarden."""

from __future__ import annotations

import asyncio
import sys

from serverwarden import __version__
from serverwarden.config import Settings, get_settings
from serverwarden.errors import ServerWardenError
from serverwarden.first_run import prompt_installed_state
from serverwarden.http import HttpClient
from serverwarden.logging import get_logger, setup_logging
from serverwarden.state import StateStore
from serverwarden.supervisor import ProcessSupervisor
from serverwarden.updater.downloader import ArtifactDownloader
from serverwarden.updater.resolver import VersionResolver
from serverwarden.updater.scheduler import UpdateScheduler


def build_scheduler(settings: Settings, store: StateStore) -> UpdateScheduler:
    """Load or interactively create the installed state and wire components."""
    log = get_logger("serverwarden.main")

    state = store.load()
    if state is None:
        log.info("state_not_found", path=str(store.path))
        state = prompt_installed_state(
            default_path=settings.default_install_path,
            default_memory=settings.default_memory_allocation,
        )
        store.save(state)

    client = HttpClient(
        progress_interval=settings.progress_interval_seconds,
        timeout=settings.http_timeout_seconds,
    )
    return UpdateScheduler(
        state=state,
        store=store,
        resolver=VersionResolver(client, settings.manifest_url),
        downloader=ArtifactDownloader(client),
        supervisor=ProcessSupervisor(java_executable=settings.java_executable),
        artifact_filename=settings.artifact_filename,
        interval=settings.update_interval_seconds,
    )


async def main() -> None:
    """Main application entry point."""
    setup_logging()
    log = get_logger("serverwarden.main")

    settings = get_settings()
    log.info(
        "starting_serverwarden",
        version=__version__,
        environment=settings.environment,
        manifest_url=settings.manifest_url,
    )

    scheduler = build_scheduler(settings, StateStore(settings.state_file))
    try:
        await scheduler.bootstrap()
        await scheduler.run_forever()
    finally:
        await scheduler.close()
        log.info("serverwarden_stopped")


def run() -> None:
    """Run the application."""
    log = get_logger("serverwarden.main")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        log.info("shutdown_requested")
    except ServerWardenError as exc:
        log.error("startup_failed", error_type=type(exc).__name__, error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    run()
