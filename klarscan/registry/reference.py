"""Image reference parsing and normalization.

Follows the Docker distribution reference grammar:

    nginx                       → docker.io/library/nginx:latest
    bitnami/postgresql:16       → docker.io/bitnami/postgresql:16
    quay.io/org/app@sha256:...  → quay.io/org/app@sha256:...
    localhost:5000/app          → localhost:5000/app:latest
"""

import logging
import re
from dataclasses import dataclass

from klarscan.consts import (
    DEFAULT_TAG,
    DOCKER_HUB_DOMAIN,
    DOCKER_HUB_OFFICIAL_NAMESPACE,
)
from klarscan.exceptions import InvalidReferenceError

logger = logging.getLogger(__name__)

NAME_TOTAL_LENGTH_MAX = 255

_ALPHANUMERIC = r"[a-z0-9]+"
_SEPARATOR = r"(?:[._]|__|[-]+)"
_PATH_COMPONENT_RE = re.compile(rf"^{_ALPHANUMERIC}(?:{_SEPARATOR}{_ALPHANUMERIC})*$")
_DOMAIN_COMPONENT = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
_DOMAIN_RE = re.compile(rf"^{_DOMAIN_COMPONENT}(?:\.{_DOMAIN_COMPONENT})*(?::[0-9]+)?$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$")
_DIGEST_RE = re.compile(
    r"^[A-Za-z][A-Za-z0-9]*(?:[-_+.][A-Za-z][A-Za-z0-9]*)*:[0-9a-fA-F]{32,}$"
)


@dataclass(frozen=True)
class ImageReference:
    """Canonical, registry-qualified image reference."""

    domain: str
    path: str
    tag: str | None = None
    digest: str | None = None

    @property
    def name(self) -> str:
        """Registry-qualified repository name, e.g. docker.io/library/nginx."""
        return f"{self.domain}/{self.path}"

    @property
    def manifest_reference(self) -> str:
        """Digest if pinned, otherwise tag (defaulting to latest)."""
        return self.digest or self.tag or DEFAULT_TAG

    @property
    def is_docker_hub(self) -> bool:
        return self.domain == DOCKER_HUB_DOMAIN

    def __str__(self) -> str:
        ref = self.name
        if self.tag:
            ref += f":{self.tag}"
        if self.digest:
            ref += f"@{self.digest}"
        return ref


def _split_domain(name: str) -> tuple[str, str]:
    """Split a name into (domain, remainder) the way the Docker CLI does."""
    i = name.find("/")
    first = name[:i] if i != -1 else ""
    if i == -1 or (
        not any(c in first for c in ".:") and first != "localhost" and first.lower() == first
    ):
        domain, remainder = DOCKER_HUB_DOMAIN, name
    else:
        domain, remainder = first, name[i + 1 :]

    if domain == "index.docker.io":
        domain = DOCKER_HUB_DOMAIN
    if domain == DOCKER_HUB_DOMAIN and "/" not in remainder:
        remainder = f"{DOCKER_HUB_OFFICIAL_NAMESPACE}/{remainder}"
    return domain, remainder


def parse_normalized_named(reference: str) -> ImageReference:
    """Parse an image reference into its canonical form.

    Args:
        reference: Image reference as typed by a user

    Returns:
        ImageReference with the Docker Hub defaults filled in

    Raises:
        InvalidReferenceError: If the reference does not follow the grammar
    """
    if not reference or reference != reference.strip():
        raise InvalidReferenceError(reference, "reference is empty or padded with whitespace")

    name, digest = reference, None
    if "@" in name:
        name, digest = name.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise InvalidReferenceError(reference, f"invalid digest '{digest}'")

    tag = None
    last_slash = name.rfind("/")
    last_colon = name.rfind(":")
    if last_colon > last_slash:
        name, tag = name[:last_colon], name[last_colon + 1 :]
        if not _TAG_RE.match(tag):
            raise InvalidReferenceError(reference, f"invalid tag '{tag}'")

    if not name:
        raise InvalidReferenceError(reference, "repository name is empty")

    domain, path = _split_domain(name)

    if not _DOMAIN_RE.match(domain):
        raise InvalidReferenceError(reference, f"invalid registry domain '{domain}'")
    if path.lower() != path:
        raise InvalidReferenceError(reference, "repository name must be lowercase")
    for component in path.split("/"):
        if not _PATH_COMPONENT_RE.match(component):
            raise InvalidReferenceError(reference, f"invalid path component '{component}'")
    if len(domain) + 1 + len(path) > NAME_TOTAL_LENGTH_MAX:
        raise InvalidReferenceError(
            reference, f"repository name exceeds {NAME_TOTAL_LENGTH_MAX} characters"
        )

    parsed = ImageReference(domain=domain, path=path, tag=tag, digest=digest)
    logger.debug(f"Normalized {reference} → {parsed}")
    return parsed
