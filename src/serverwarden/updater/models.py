"""Release metadata models.

Plain dataclasses with ``from_dict`` constructors that raise
``ManifestError`` for missing or ill-typed fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from serverwarden.constants import RELEASE_TYPE, SERVER_ARTIFACT_KEY
from serverwarden.errors import ManifestError


def _require_str(data: dict[str, Any], key: str, context: str) -> str:
    value = data.get(key)
    if value is None:
        raise ManifestError(f"{context}: '{key}' not found")
    if not isinstance(value, str):
        raise ManifestError(f"{context}: '{key}' is not a string")
    return value


def _require_dict(data: Any, context: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ManifestError(f"{context}: expected a JSON object")
    return data


@dataclass(frozen=True)
class ManifestEntry:
    """One release listed in the manifest."""

    id: str
    type: str
    url: str | None = None

    @property
    def is_release(self) -> bool:
        return self.type == RELEASE_TYPE

    @classmethod
    def from_dict(cls, data: Any) -> ManifestEntry:
        entry = _require_dict(data, "manifest entry")
        url = entry.get("url")
        return cls(
            id=_require_str(entry, "id", "manifest entry"),
            type=_require_str(entry, "type", "manifest entry"),
            url=url if isinstance(url, str) and url else None,
        )


@dataclass
class Manifest:
    """Remote catalog of releases, in document order.

    Only entries up to and including the first release are parsed; the
    rest of the list is never consulted.
    """

    versions: list[ManifestEntry] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> Manifest:
        body = _require_dict(data, "manifest")
        versions = body.get("versions")
        if not isinstance(versions, list):
            raise ManifestError("manifest: 'versions' not found")
        entries: list[ManifestEntry] = []
        for item in versions:
            entry = ManifestEntry.from_dict(item)
            entries.append(entry)
            if entry.is_release:
                break
        return cls(versions=entries)

    def latest_release(self) -> ManifestEntry:
        """Return the first entry of type ``release``; later ones are ignored."""
        for entry in self.versions:
            if entry.is_release:
                return entry
        raise ManifestError("manifest: no entry of type 'release'")


@dataclass(frozen=True)
class PackageDescriptor:
    """Per-release metadata holding the server artifact location."""

    id: str
    server_url: str

    @classmethod
    def from_dict(cls, data: Any) -> PackageDescriptor:
        body = _require_dict(data, "package")
        version_id = _require_str(body, "id", "package")
        downloads = body.get("downloads")
        if not isinstance(downloads, dict):
            raise ManifestError(f"package {version_id}: 'downloads' not found")
        server = downloads.get(SERVER_ARTIFACT_KEY)
        if not isinstance(server, dict):
            raise ManifestError(
                f"package {version_id}: '{SERVER_ARTIFACT_KEY}' download not found"
            )
        return cls(
            id=version_id,
            server_url=_require_str(server, "url", f"package {version_id} server download"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "downloads": {SERVER_ARTIFACT_KEY: {"url": self.server_url}}}
