"""Pydantic models for klarscan."""

from klarscan.models.model_config import (
    SEVERITY_PRIORITIES,
    Config,
    CredentialTriple,
    DockerConfig,
    Severity,
)
from klarscan.models.model_scanner import (
    FsLayerCommand,
    ScanOutcome,
    ScanResult,
    Vulnerability,
)

__all__ = [
    # Configuration models
    "Config",
    "CredentialTriple",
    "DockerConfig",
    "SEVERITY_PRIORITIES",
    "Severity",
    # Scan models
    "FsLayerCommand",
    "ScanOutcome",
    "ScanResult",
    "Vulnerability",
]
