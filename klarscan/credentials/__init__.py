"""Registry credential resolution from explicit values or pull secrets."""

from klarscan.credentials.keyring import AuthEntry, DockerConfigKeyring, Keyring
from klarscan.credentials.resolver import resolve_credentials

__all__ = [
    "AuthEntry",
    "DockerConfigKeyring",
    "Keyring",
    "resolve_credentials",
]
