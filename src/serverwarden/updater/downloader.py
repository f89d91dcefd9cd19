"""Fetches the server artifact and writes it into the install directory."""

from __future__ import annotations

from pathlib import Path

from serverwarden.errors import ArtifactWriteError
from serverwarden.http import HttpClient
from serverwarden.logging import get_logger

log = get_logger("serverwarden.updater.downloader")


class ArtifactDownloader:
    """Downloads artifacts with the shared HTTP client.

    The destination is overwritten in place: there is no temporary file or
    rename step, so callers must not start a process on the artifact until
    :meth:`write` has returned.
    """

    def __init__(self, client: HttpClient) -> None:
        self._client = client

    async def fetch(self, url: str) -> bytes:
        response = await self._client.get(url)
        response.raise_for_status()
        return response.body

    def write(self, data: bytes, destination: Path) -> None:
        try:
            destination.write_bytes(data)
        except OSError as exc:
            raise ArtifactWriteError(f"Failed to write {destination}: {exc}") from exc
        log.info("updater_artifact_written", path=str(destination), bytes=len(data))

    async def download(self, url: str, destination: Path) -> Path:
        """Fetch *url* and write it to *destination*."""
        log.info("updater_downloading", url=url)
        self.write(await self.fetch(url), destination)
        return destination
