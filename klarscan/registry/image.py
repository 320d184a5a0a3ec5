"""Pulled container image handle."""

import json
import logging
from typing import Any

import httpx

from klarscan.consts import (
    DEFAULT_PLATFORM_ARCH,
    DEFAULT_PLATFORM_OS,
    MEDIA_TYPE_MANIFEST_LIST,
    MEDIA_TYPE_OCI_INDEX,
)
from klarscan.exceptions import PullError, PullErrorKind
from klarscan.models.model_config import DockerConfig
from klarscan.models.model_scanner import FsLayerCommand
from klarscan.registry.client import RegistryClient
from klarscan.registry.reference import ImageReference, parse_normalized_named

logger = logging.getLogger(__name__)


def trim_digest(digest: str) -> str:
    """Strip the algorithm prefix from a digest (sha256:abc → abc)."""
    return digest.split(":", 1)[-1]


def _v1_command(v1_compatibility: Any) -> str:
    try:
        data = json.loads(v1_compatibility)
    except (json.JSONDecodeError, TypeError):
        return ""
    config = data.get("container_config") if isinstance(data, dict) else None
    cmd = config.get("Cmd") if isinstance(config, dict) else None
    if isinstance(cmd, list):
        return " ".join(str(part) for part in cmd)
    return cmd if isinstance(cmd, str) else ""


def _entry_values(entries: Any, key: str, what: str) -> list[str]:
    """Pull one required string field out of every manifest entry."""
    if not isinstance(entries, list):
        raise PullError(PullErrorKind.INVALID_MANIFEST, f"manifest {what} is not a list")
    values = []
    for entry in entries:
        value = entry.get(key) if isinstance(entry, dict) else None
        if not isinstance(value, str) or not value:
            raise PullError(
                PullErrorKind.INVALID_MANIFEST, f"manifest {what} entry has no '{key}'"
            )
        values.append(value)
    return values


class Image:
    """A container image pulled from its registry.

    Construction only parses the reference; ``pull`` fetches the manifest and
    ``fetch_fs_commands`` the per-layer build history.
    """

    def __init__(
        self,
        docker_config: DockerConfig,
        trace: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Image.

        Args:
            docker_config: Image name, credentials, timeout and platform
            trace: Log registry traffic at debug level
            transport: Custom httpx transport for the registry client

        Raises:
            InvalidReferenceError: If the image name is malformed
        """
        self.reference: ImageReference = parse_normalized_named(docker_config.image_name)
        self.platform_os = docker_config.platform_os or DEFAULT_PLATFORM_OS
        self.platform_arch = docker_config.platform_arch or DEFAULT_PLATFORM_ARCH
        self.client = RegistryClient(
            self.reference,
            docker_config.credentials,
            timeout=docker_config.timeout.total_seconds(),
            trace=trace,
            transport=transport,
        )

        self.digest = ""
        self.schema_version = 0
        self.fs_layers: list[str] = []
        self._config_digest: str | None = None
        self._v1_history: list[str] = []
        self._fs_commands: list[FsLayerCommand] = []

    def __repr__(self) -> str:
        return f"Image({self.reference}, digest={self.digest or '?'}, layers={len(self.fs_layers)})"

    async def aclose(self) -> None:
        await self.client.aclose()

    def _select_platform(self, manifests: Any) -> str:
        if not isinstance(manifests, list):
            raise PullError(PullErrorKind.INVALID_MANIFEST, "manifest list entries are not a list")
        for entry in manifests:
            platform = entry.get("platform") if isinstance(entry, dict) else None
            if not isinstance(platform, dict):
                continue
            if (
                platform.get("os") == self.platform_os
                and platform.get("architecture") == self.platform_arch
            ):
                return _entry_values([entry], "digest", "list")[0]
        raise PullError(
            PullErrorKind.NOT_FOUND,
            f"no manifest for platform {self.platform_os}/{self.platform_arch} in {self.reference}",
        )

    async def pull(self) -> None:
        """Fetch the manifest and record digest, schema version and layers.

        Raises:
            PullError: If the registry is unreachable, rejects the credentials,
                or does not know the image
        """
        manifest, media_type, digest = await self.client.get_manifest(
            self.reference.manifest_reference
        )

        if media_type in (MEDIA_TYPE_MANIFEST_LIST, MEDIA_TYPE_OCI_INDEX) or "manifests" in manifest:
            platform_digest = self._select_platform(manifest.get("manifests") or [])
            logger.debug(
                f"Selected {self.platform_os}/{self.platform_arch} manifest {platform_digest}"
            )
            manifest, media_type, digest = await self.client.get_manifest(platform_digest)
            digest = digest or platform_digest

        self.schema_version = manifest.get("schemaVersion", 0)
        if self.schema_version == 1:
            # v1 lists layers top-down; keep base layer first
            self.fs_layers = _entry_values(manifest.get("fsLayers") or [], "blobSum", "fsLayers")
            self.fs_layers.reverse()
            history = manifest.get("history") or []
            if not isinstance(history, list):
                raise PullError(PullErrorKind.INVALID_MANIFEST, "manifest history is not a list")
            self._v1_history = [
                entry.get("v1Compatibility", "") if isinstance(entry, dict) else ""
                for entry in reversed(history)
            ]
        elif self.schema_version == 2:
            self.fs_layers = _entry_values(manifest.get("layers") or [], "digest", "layers")
            config = manifest.get("config")
            self._config_digest = config.get("digest") if isinstance(config, dict) else None
        else:
            raise PullError(
                PullErrorKind.INVALID_MANIFEST,
                f"unsupported manifest schema version {self.schema_version} ({media_type})",
            )

        self.digest = digest or self.reference.digest or ""
        logger.info(
            f"Pulled {self.reference}: schema v{self.schema_version}, "
            f"{len(self.fs_layers)} layers"
        )

    async def fetch_fs_commands(self) -> None:
        """Fetch the build command of every layer, in layer order."""
        if self.schema_version == 1:
            commands = [_v1_command(entry) for entry in self._v1_history]
        elif self._config_digest:
            config_blob = await self.client.get_blob_json(self._config_digest)
            commands = self._history_commands(config_blob.get("history") or [])
        else:
            commands = []

        self._fs_commands = [
            FsLayerCommand(layer=layer, command=commands[i] if i < len(commands) else "")
            for i, layer in enumerate(self.fs_layers)
        ]

    def _history_commands(self, history: Any) -> list[str]:
        """Build commands of the non-empty layers in a config blob history."""
        if not isinstance(history, list) or not all(isinstance(e, dict) for e in history):
            raise PullError(
                PullErrorKind.INVALID_MANIFEST,
                f"config blob {self._config_digest} has a malformed history",
            )
        commands = []
        for entry in history:
            if entry.get("empty_layer"):
                continue
            created_by = entry.get("created_by")
            commands.append(created_by if isinstance(created_by, str) else "")
        return commands

    def get_fs_commands(self) -> list[FsLayerCommand]:
        return list(self._fs_commands)

    def layer_url(self, layer: str) -> str:
        """Registry URL of a layer blob."""
        return self.client.blob_url(layer)

    def registry_headers(self) -> dict[str, str]:
        """Headers a third party needs to download this image's blobs."""
        return self.client.authorization_header()
