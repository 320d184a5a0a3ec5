"""Registry access: reference parsing, manifest pulls, image handles."""

from klarscan.registry.client import RegistryClient
from klarscan.registry.image import Image, trim_digest
from klarscan.registry.reference import ImageReference, parse_normalized_named

__all__ = [
    "Image",
    "ImageReference",
    "RegistryClient",
    "parse_normalized_named",
    "trim_digest",
]
