"""Data models for scan results."""

from dataclasses import dataclass

from pydantic import BaseModel, Field

from klarscan.exceptions import ScannerError


class FsLayerCommand(BaseModel):
    """Build command that produced one filesystem layer."""

    layer: str = Field(description="Layer blob digest")
    command: str = Field(default="", description="History command for the layer")


class Vulnerability(BaseModel):
    """One finding reported by the analysis service."""

    name: str = Field(description="Vulnerability identifier (e.g. CVE-2024-1234)")
    namespace_name: str = Field(default="", description="Distribution namespace")
    description: str = Field(default="")
    link: str = Field(default="")
    severity: str = Field(default="Unknown")
    fixed_by: str = Field(default="", description="Version fixing the issue, if any")
    feature_name: str = Field(default="", description="Affected package")
    feature_version: str = Field(default="", description="Affected package version")


class ScanResult(BaseModel):
    """Aggregated report for one scanned image."""

    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    fs_layer_commands: list[FsLayerCommand] = Field(default_factory=list)
    image_hash: str = Field(default="", description="Image digest without algorithm prefix")
    image_schema_version: int = Field(default=0, description="Manifest schema version")


@dataclass
class ScanOutcome:
    """Result of a scan that got past the pull stage.

    ``error`` is set when the analysis stage failed; ``result`` then holds the
    image identity and layer history with an empty vulnerability list.
    """

    result: ScanResult
    error: ScannerError | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None
