"""Scan configuration resolved from environment settings.

All settings are read once, validated, and frozen into a ``Config``. Invalid
required settings fail before any network activity happens.

Numeric and boolean settings are lenient by default: an unparsable value
falls back to ``0`` / ``False`` exactly like an unset one. Pass
``strict=True`` to reject such values instead.
"""

import logging
import os
import re
from collections.abc import Mapping

from klarscan.consts import (
    DEFAULT_FORMAT_STYLE,
    MIN_TIMEOUT_MINUTES,
    OPTION_CLAIR_ADDRESS,
    OPTION_CLAIR_OUTPUT,
    OPTION_CLAIR_THRESHOLD,
    OPTION_CLAIR_TIMEOUT,
    OPTION_DOCKER_INSECURE,
    OPTION_DOCKER_PASSWORD,
    OPTION_DOCKER_PLATFORM_ARCH,
    OPTION_DOCKER_PLATFORM_OS,
    OPTION_DOCKER_TIMEOUT,
    OPTION_DOCKER_TOKEN,
    OPTION_DOCKER_USER,
    OPTION_FORMAT_OUTPUT,
    OPTION_IGNORE_UNFIXED,
    OPTION_JSON_OUTPUT,
    OPTION_K8S_IMAGE_PULL_SECRET,
    OPTION_KLAR_TRACE,
    OPTION_REGISTRY_INSECURE,
    OPTION_WHITELIST_FILE,
    TIMEOUT_UNIT,
)
from klarscan.credentials.resolver import resolve_credentials
from klarscan.exceptions import ConfigError, ConfigErrorKind
from klarscan.models.model_config import (
    SEVERITY_PRIORITIES,
    Config,
    DockerConfig,
    Severity,
)

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"^[+-]?[0-9]+$")
_TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}


def parse_output_priority(environ: Mapping[str, str]) -> Severity:
    """Parse the output severity level.

    Matching is case-insensitive: the value is trimmed, lower-cased and each
    word capitalized before it is compared with the known levels.

    Raises:
        ConfigError: If the value is set but is not a known severity
    """
    raw = environ.get(OPTION_CLAIR_OUTPUT, "")
    if not raw:
        return Severity.UNKNOWN

    candidate = raw.strip().lower().title()
    for severity in Severity:
        if severity.value == candidate:
            return severity

    raise ConfigError(
        ConfigErrorKind.INVALID_ENUM_VALUE,
        f"Clair output level {raw} is not supported, only support {SEVERITY_PRIORITIES}",
        setting=OPTION_CLAIR_OUTPUT,
    )


def parse_int_option(environ: Mapping[str, str], key: str, strict: bool = False) -> int:
    """Parse an integer setting; unset or unparsable values yield 0."""
    raw = environ.get(key, "")
    if not raw:
        return 0
    if _INT_RE.match(raw):
        return int(raw)
    if strict:
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"{key}={raw!r} is not an integer",
            setting=key,
        )
    logger.debug(f"Ignoring unparsable integer {key}={raw!r}, using 0")
    return 0


def parse_bool_option(environ: Mapping[str, str], key: str, strict: bool = False) -> bool:
    """Parse a boolean setting; unset or unparsable values yield False."""
    raw = environ.get(key, "")
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES or not raw:
        return False
    if strict:
        raise ConfigError(
            ConfigErrorKind.INVALID_VALUE,
            f"{key}={raw!r} is not a boolean",
            setting=key,
        )
    logger.debug(f"Ignoring unparsable boolean {key}={raw!r}, using false")
    return False


def _timeout_minutes(environ: Mapping[str, str], key: str, strict: bool) -> int:
    minutes = parse_int_option(environ, key, strict)
    return minutes if minutes > 0 else MIN_TIMEOUT_MINUTES


def resolve_config(
    image_name: str,
    environ: Mapping[str, str] | None = None,
    *,
    strict: bool = False,
    forwarding_target_url: str | None = None,
) -> Config:
    """Read and validate all scan settings.

    Args:
        image_name: Image reference to scan
        environ: Settings source (default: os.environ)
        strict: Reject unparsable integer and boolean settings
        forwarding_target_url: Optional URL the final report is posted to

    Returns:
        Frozen Config

    Raises:
        ConfigError: On a missing required setting or an out-of-domain value
        CredentialError: If registry credentials cannot be resolved
    """
    env = os.environ if environ is None else environ

    clair_addr = env.get(OPTION_CLAIR_ADDRESS, "")
    if not clair_addr:
        raise ConfigError(
            ConfigErrorKind.MISSING_REQUIRED,
            "Clair address must be provided",
            setting=OPTION_CLAIR_ADDRESS,
        )

    trace = bool(env.get(OPTION_KLAR_TRACE, ""))
    clair_output = parse_output_priority(env)
    threshold = parse_int_option(env, OPTION_CLAIR_THRESHOLD, strict)
    clair_timeout = _timeout_minutes(env, OPTION_CLAIR_TIMEOUT, strict)
    docker_timeout = _timeout_minutes(env, OPTION_DOCKER_TIMEOUT, strict)

    credentials = resolve_credentials(
        image_name,
        user=env.get(OPTION_DOCKER_USER, ""),
        password=env.get(OPTION_DOCKER_PASSWORD, ""),
        token=env.get(OPTION_DOCKER_TOKEN, ""),
        secret_document=env.get(OPTION_K8S_IMAGE_PULL_SECRET) or None,
        insecure_tls=parse_bool_option(env, OPTION_DOCKER_INSECURE, strict),
        insecure_registry=parse_bool_option(env, OPTION_REGISTRY_INSECURE, strict),
    )

    config = Config(
        clair_addr=clair_addr,
        clair_output=clair_output,
        trace=trace,
        threshold=threshold,
        clair_timeout=clair_timeout * TIMEOUT_UNIT,
        json_output=parse_bool_option(env, OPTION_JSON_OUTPUT, strict),
        format_style=env.get(OPTION_FORMAT_OUTPUT, "") or DEFAULT_FORMAT_STYLE,
        docker=DockerConfig(
            image_name=image_name,
            credentials=credentials,
            timeout=docker_timeout * TIMEOUT_UNIT,
            platform_os=env.get(OPTION_DOCKER_PLATFORM_OS, ""),
            platform_arch=env.get(OPTION_DOCKER_PLATFORM_ARCH, ""),
        ),
        whitelist_file=env.get(OPTION_WHITELIST_FILE, ""),
        ignore_unfixed=parse_bool_option(env, OPTION_IGNORE_UNFIXED, strict),
        forwarding_target_url=forwarding_target_url,
    )

    logger.debug(
        f"Resolved config: clair={config.clair_addr} output={config.clair_output.value} "
        f"clair_timeout={config.clair_timeout} docker_timeout={config.docker.timeout} "
        f"credentials={config.docker.credentials}"
    )
    return config
