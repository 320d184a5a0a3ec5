"""Configuration resolution from environment settings."""

from klarscan.config.settings import (
    parse_bool_option,
    parse_int_option,
    parse_output_priority,
    resolve_config,
)

__all__ = [
    "parse_bool_option",
    "parse_int_option",
    "parse_output_priority",
    "resolve_config",
]
