"""Interactive first-run setup."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from serverwarden.errors import SetupError
from serverwarden.logging import get_logger
from serverwarden.state import InstalledState

log = get_logger("serverwarden.first_run")

Prompt = Callable[[str], str]


def prompt_installed_state(
    default_path: str,
    default_memory: int,
    prompt: Prompt = input,
) -> InstalledState:
    """Ask for the install path and memory allocation.

    Empty answers take the defaults. The install directory is created if
    it does not exist yet. The returned state has no version, so the first
    update cycle always downloads the latest release.
    """
    path = prompt(f"Path: ({default_path}) ").strip() or default_path
    install_path = Path(path).expanduser()
    if not install_path.exists():
        try:
            install_path.mkdir(parents=True)
        except OSError as exc:
            log.error("setup_path_create_failed", path=str(install_path), error=str(exc))
            raise SetupError(f"Unable to create path {install_path}") from exc

    while True:
        answer = prompt(f"Memory allocation in GB: ({default_memory}) ").strip()
        if not answer:
            memory = default_memory
            break
        if answer.isdigit() and int(answer) > 0:
            memory = int(answer)
            break
        print(f"Enter a whole number of gigabytes, got {answer!r}")

    log.info("setup_complete", path=str(install_path), memory_gb=memory)
    return InstalledState(path=str(install_path), version="", memory_allocation=memory)
