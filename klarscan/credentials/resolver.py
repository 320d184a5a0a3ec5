"""Resolve registry credentials for one image reference."""

import logging
from collections.abc import Callable

from klarscan.credentials.keyring import DockerConfigKeyring, Keyring
from klarscan.exceptions import CredentialError, CredentialErrorKind, InvalidReferenceError
from klarscan.models.model_config import CredentialTriple
from klarscan.registry.reference import parse_normalized_named

logger = logging.getLogger(__name__)


def resolve_credentials(
    image_name: str,
    user: str = "",
    password: str = "",
    token: str = "",
    secret_document: str | bytes | None = None,
    *,
    insecure_tls: bool = False,
    insecure_registry: bool = False,
    keyring_factory: Callable[[str | bytes], Keyring] = DockerConfigKeyring.from_document,
) -> CredentialTriple:
    """Turn raw credential inputs into a single credential triple.

    Resolution order:
    1. Explicit user/password/token, if any of them is set
    2. The pull-secret document, which must hold exactly one entry for the
       image's registry
    3. Anonymous access

    Args:
        image_name: Image reference to scope the lookup to
        user: Explicit registry username
        password: Explicit registry password
        token: Explicit bearer token
        secret_document: Serialized per-registry auth document, if any
        insecure_tls: Skip TLS verification against the registry
        insecure_registry: Use plain HTTP against the registry
        keyring_factory: Builds a keyring from the document

    Returns:
        Resolved CredentialTriple (empty secrets for anonymous access)

    Raises:
        CredentialError: On a malformed document or reference, or when the
            document holds zero or several entries for the registry
    """
    flags = {"insecure_tls": insecure_tls, "insecure_registry": insecure_registry}

    if user or password or token:
        logger.debug("Using explicitly supplied registry credentials")
        return CredentialTriple(username=user, password=password, token=token, **flags)

    if not secret_document:
        logger.debug("No registry credentials supplied, using anonymous access")
        return CredentialTriple(**flags)

    keyring = keyring_factory(secret_document)

    try:
        reference = parse_normalized_named(image_name)
    except InvalidReferenceError as e:
        raise CredentialError(CredentialErrorKind.INVALID_IMAGE_REFERENCE, str(e)) from e

    entries = keyring.lookup(reference.name)
    if len(entries) != 1:
        raise CredentialError(
            CredentialErrorKind.AMBIGUOUS_OR_MISSING_MATCH,
            f"failed to get secret docker credentials for {reference.name}: "
            f"expected exactly one matching entry, found {len(entries)}",
        )

    entry = entries[0]
    logger.info(f"Using pull secret credentials for {reference.domain} (key {entry.registry})")
    return CredentialTriple(username=entry.username, password=entry.password, **flags)
