"""Registry keyrings: look up candidate credentials for an image name.

A keyring is built from a pull-secret document (a Docker ``config.json``
style document issued by the cluster) and answers one question: which
stored auth entries apply to a given registry-qualified image name.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any

from klarscan.consts import DOCKER_HUB_ALIASES, DOCKER_HUB_DOMAIN
from klarscan.exceptions import CredentialError, CredentialErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthEntry:
    """One registry auth entry from a pull-secret document."""

    registry: str
    username: str = ""
    password: str = ""

    def __repr__(self) -> str:
        return f"AuthEntry(registry={self.registry!r}, username={self.username!r})"


@dataclass(frozen=True)
class _RegistryKey:
    """A keyring key split into matchable parts."""

    raw: str
    host: str
    port: str
    path: tuple[str, ...]


def _strip_scheme(value: str) -> str:
    for scheme in ("https://", "http://"):
        if value.startswith(scheme):
            return value[len(scheme) :]
    return value


def _split_location(value: str) -> tuple[str, str, tuple[str, ...]]:
    """Split ``host[:port][/path]`` into its parts."""
    host_port, _, path = value.partition("/")
    host, _, port = host_port.partition(":")
    return host.lower(), port, tuple(part for part in path.split("/") if part)


def _parse_key(key: str) -> _RegistryKey:
    host, port, path = _split_location(_strip_scheme(key.strip()).rstrip("/"))
    if host in DOCKER_HUB_ALIASES and not port:
        # index.docker.io/v1/ and friends all mean the Docker Hub root
        host, path = DOCKER_HUB_DOMAIN, ()
    return _RegistryKey(raw=key, host=host, port=port, path=path)


def _host_matches(pattern: str, host: str) -> bool:
    """Match host names label by label; labels may be globs (*.example.com)."""
    pattern_labels = pattern.split(".")
    host_labels = host.split(".")
    if len(pattern_labels) != len(host_labels):
        return False
    return all(fnmatchcase(h, p) for p, h in zip(pattern_labels, host_labels))


class Keyring(ABC):
    """Lookup capability for registry credentials."""

    @abstractmethod
    def lookup(self, image_name: str) -> list[AuthEntry]:
        """Return every entry that applies to a registry-qualified image name.

        Args:
            image_name: Normalized name such as ``docker.io/library/nginx``

        Returns:
            Matching entries, most specific first. Possibly empty.
        """
        ...


class DockerConfigKeyring(Keyring):
    """Keyring backed by a Docker config document.

    Accepts both the ``.dockerconfigjson`` layout (``{"auths": {...}}``) and
    the legacy ``.dockercfg`` layout (a bare host → entry map).
    """

    def __init__(self) -> None:
        self._entries: list[tuple[_RegistryKey, AuthEntry]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, entry: AuthEntry) -> None:
        """Register an entry under its registry key."""
        self._entries.append((_parse_key(entry.registry), entry))

    @classmethod
    def from_document(cls, document: str | bytes) -> "DockerConfigKeyring":
        """Build a keyring from a serialized pull-secret document.

        Raises:
            CredentialError: If the document is not a valid Docker config
        """
        try:
            data = json.loads(document)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CredentialError(
                CredentialErrorKind.MALFORMED_DOCUMENT, f"pull secret is not valid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise CredentialError(
                CredentialErrorKind.MALFORMED_DOCUMENT, "pull secret must be a JSON object"
            )

        auths = data["auths"] if "auths" in data else data
        if not isinstance(auths, dict):
            raise CredentialError(
                CredentialErrorKind.MALFORMED_DOCUMENT, "'auths' must be a JSON object"
            )

        keyring = cls()
        for registry, raw_entry in auths.items():
            keyring.add(_parse_entry(registry, raw_entry))

        logger.debug(f"Built keyring with {len(keyring)} registry entries")
        return keyring

    def lookup(self, image_name: str) -> list[AuthEntry]:
        host, port, path = _split_location(image_name)
        if host in DOCKER_HUB_ALIASES and not port:
            host = DOCKER_HUB_DOMAIN

        matches = [
            (key, entry)
            for key, entry in self._entries
            if key.port == port
            and _host_matches(key.host, host)
            and path[: len(key.path)] == key.path
        ]
        matches.sort(key=lambda match: len(match[0].raw), reverse=True)
        return [entry for _, entry in matches]


def _parse_entry(registry: str, raw_entry: Any) -> AuthEntry:
    if not isinstance(raw_entry, dict):
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            f"auth entry for '{registry}' must be a JSON object",
        )

    username = raw_entry.get("username") or ""
    password = raw_entry.get("password") or ""

    auth = raw_entry.get("auth") or ""
    if not all(isinstance(v, str) for v in (username, password, auth)):
        raise CredentialError(
            CredentialErrorKind.MALFORMED_DOCUMENT,
            f"auth entry for '{registry}' has non-string fields",
        )

    if auth:
        try:
            decoded = base64.b64decode(auth, validate=True).decode("utf-8")
        except ValueError as e:
            raise CredentialError(
                CredentialErrorKind.MALFORMED_DOCUMENT,
                f"auth field for '{registry}' is not valid base64",
            ) from e
        user_part, sep, password_part = decoded.partition(":")
        if not sep:
            raise CredentialError(
                CredentialErrorKind.MALFORMED_DOCUMENT,
                f"auth field for '{registry}' must encode 'username:password'",
            )
        username, password = user_part, password_part

    return AuthEntry(registry=registry, username=username, password=password)
