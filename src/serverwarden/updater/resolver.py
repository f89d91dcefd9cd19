"""Decides whether a newer release than the installed one exists."""

from __future__ import annotations

import json
from typing import Any

from serverwarden.errors import ManifestError
from serverwarden.http import HttpClient
from serverwarden.logging import get_logger
from serverwarden.updater.models import Manifest, PackageDescriptor

log = get_logger("serverwarden.updater.resolver")


class VersionResolver:
    """Looks up the latest release in the manifest.

    The first ``release`` entry of the manifest is authoritative. When its
    id matches the installed version nothing else is fetched; otherwise
    the package descriptor at the entry's URL is fetched and returned.
    """

    def __init__(self, client: HttpClient, manifest_url: str) -> None:
        self._client = client
        self._manifest_url = manifest_url

    async def resolve(self, current_version: str | None) -> PackageDescriptor | None:
        """Return the descriptor of a newer release, or None if up to date."""
        manifest = Manifest.from_dict(await self._fetch_json(self._manifest_url))
        latest = manifest.latest_release()

        if latest.id == current_version:
            log.debug("updater_up_to_date", version=current_version)
            return None

        if latest.url is None:
            raise ManifestError(f"manifest: release {latest.id} has no url")

        log.info("updater_new_release_found", current=current_version, latest=latest.id)
        return PackageDescriptor.from_dict(await self._fetch_json(latest.url))

    async def _fetch_json(self, url: str) -> Any:
        response = await self._client.get(url)
        if not response.ok:
            raise ManifestError(f"{url} returned HTTP {response.status_code}")
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ManifestError(f"{url} did not return valid JSON: {exc}") from exc
