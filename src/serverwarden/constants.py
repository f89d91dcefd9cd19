"""Centralized constants for Serverwarden."""

# Release metadata
DEFAULT_MANIFEST_URL = "https://launchermeta.mojang.com/mc/game/version_manifest.json"
RELEASE_TYPE = "release"
SERVER_ARTIFACT_KEY = "server"

# Installation
DEFAULT_ARTIFACT_FILENAME = "minecraft_server.jar"
DEFAULT_MEMORY_ALLOCATION_GB = 1
DEFAULT_STATE_FILE = "config.json"

# Scheduling (seconds)
UPDATE_INTERVAL_SECONDS = 30
PROGRESS_INTERVAL_SECONDS = 3.0

# HTTP
HTTP_PORT = 80
HTTPS_PORT = 443
READ_CHUNK_SIZE = 64 * 1024
BINARY_CONTENT_TYPES = frozenset({"application/octet-stream", "application/java-archive"})

# Child process output lines can be long (stack traces); asyncio's default is 64 KiB
PROCESS_STREAM_LIMIT = 1024 * 1024
