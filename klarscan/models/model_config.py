"""Configuration models resolved once per scan and never mutated afterwards."""

from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from klarscan.consts import DEFAULT_FORMAT_STYLE, TIMEOUT_UNIT


class Severity(str, Enum):
    """Vulnerability severity levels, lowest first."""

    UNKNOWN = "Unknown"
    NEGLIGIBLE = "Negligible"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    DEFCON1 = "Defcon1"

    @property
    def rank(self) -> int:
        """Position in the severity order (Unknown == 0)."""
        return list(Severity).index(self)


SEVERITY_PRIORITIES = [severity.value for severity in Severity]


class CredentialTriple(BaseModel):
    """Registry credentials scoped to one image reference."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(default="", description="Registry username")
    password: str = Field(default="", description="Registry password")
    token: str = Field(default="", description="Registry bearer token")
    insecure_tls: bool = Field(default=False, description="Skip TLS certificate verification")
    insecure_registry: bool = Field(default=False, description="Talk plain HTTP to the registry")

    @computed_field
    @property
    def is_anonymous(self) -> bool:
        """True when no secret of any scheme is set."""
        return not (self.username or self.password or self.token)

    def __repr__(self) -> str:
        # Secrets must never leak into logs or tracebacks
        return (
            f"CredentialTriple(username={self.username!r}, password='***', token='***', "
            f"insecure_tls={self.insecure_tls}, insecure_registry={self.insecure_registry})"
        )

    __str__ = __repr__


class DockerConfig(BaseModel):
    """Registry-side settings for pulling the target image."""

    model_config = ConfigDict(frozen=True)

    image_name: str = Field(description="Image reference as given on the command line")
    credentials: CredentialTriple = Field(default_factory=CredentialTriple)
    timeout: timedelta = Field(default=TIMEOUT_UNIT, description="Registry call timeout")
    platform_os: str = Field(default="", description="Manifest list OS selector")
    platform_arch: str = Field(default="", description="Manifest list architecture selector")


class Config(BaseModel):
    """Validated scan configuration."""

    model_config = ConfigDict(frozen=True)

    clair_addr: str = Field(description="Vulnerability-analysis service address")
    clair_output: Severity = Field(default=Severity.UNKNOWN, description="Output severity level")
    trace: bool = Field(default=False, description="Verbose request tracing")
    threshold: int = Field(default=0, description="Numeric severity threshold")
    clair_timeout: timedelta = Field(default=TIMEOUT_UNIT, description="Analysis call timeout")
    json_output: bool = Field(default=False, description="Deprecated JSON output switch")
    format_style: str = Field(default=DEFAULT_FORMAT_STYLE, description="Output format style")
    docker: DockerConfig
    whitelist_file: str = Field(default="", description="Vulnerability whitelist file path")
    ignore_unfixed: bool = Field(default=False, description="Skip vulnerabilities without a fix")
    forwarding_target_url: str | None = Field(
        default=None, description="Where to POST the final report, if anywhere"
    )
