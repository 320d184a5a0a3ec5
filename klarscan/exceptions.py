"""Error taxonomy for configuration, credential, pull and analysis failures.

Every error carries a ``kind`` so callers can branch on the failure class
without parsing messages. Only ``ScannerError`` is recoverable: the
orchestrator keeps it next to a populated result instead of raising it.
"""

from enum import Enum


class ConfigErrorKind(Enum):
    """Classification of configuration errors."""

    MISSING_REQUIRED = "missing_required"
    INVALID_ENUM_VALUE = "invalid_enum_value"
    INVALID_VALUE = "invalid_value"


class CredentialErrorKind(Enum):
    """Classification of credential resolution errors."""

    MALFORMED_DOCUMENT = "malformed_document"
    INVALID_IMAGE_REFERENCE = "invalid_image_reference"
    AMBIGUOUS_OR_MISSING_MATCH = "ambiguous_or_missing_match"


class PullErrorKind(Enum):
    """Classification of registry pull errors."""

    UNREACHABLE = "unreachable"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    INVALID_MANIFEST = "invalid_manifest"


class ScannerErrorKind(Enum):
    """Classification of vulnerability-analysis errors."""

    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    API_ERROR = "api_error"
    INVALID_RESPONSE = "invalid_response"


class KlarScanError(Exception):
    """Base class for all klarscan errors."""


class ConfigError(KlarScanError):
    """A required setting is missing or a value is outside its domain."""

    def __init__(self, kind: ConfigErrorKind, message: str, setting: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.setting = setting


class CredentialError(KlarScanError):
    """Registry credentials could not be resolved."""

    def __init__(self, kind: CredentialErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class InvalidReferenceError(KlarScanError, ValueError):
    """An image reference does not follow the reference grammar."""

    def __init__(self, reference: str, reason: str):
        super().__init__(f"invalid image reference '{reference}': {reason}")
        self.reference = reference
        self.reason = reason


class PullError(KlarScanError):
    """The image could not be pulled from its registry."""

    def __init__(self, kind: PullErrorKind, message: str, status_code: int | None = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class LayerExtractionError(KlarScanError):
    """The pulled image yielded no usable filesystem layers."""


class ScannerError(KlarScanError):
    """The vulnerability-analysis service failed. Recoverable."""

    def __init__(self, kind: ScannerErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ForwardingError(KlarScanError):
    """The scan report could not be delivered to the forwarding target."""
