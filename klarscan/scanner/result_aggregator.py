"""Assemble the final scan report from whatever stages completed."""

from klarscan.models.model_scanner import FsLayerCommand, ScanResult, Vulnerability
from klarscan.registry.image import Image, trim_digest


def aggregate(
    image: Image,
    layer_commands: list[FsLayerCommand],
    vulnerabilities: list[Vulnerability] | None,
) -> ScanResult:
    """Package image identity, layer history and findings into a ScanResult.

    Pure: inputs are copied, never mutated. An empty (or missing)
    vulnerability list is valid and yields an empty list in the report.
    """
    return ScanResult(
        vulnerabilities=list(vulnerabilities or []),
        fs_layer_commands=list(layer_commands),
        image_hash=trim_digest(image.digest),
        image_schema_version=image.schema_version,
    )
