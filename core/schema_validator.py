"""Schema validation for engine tuning params."""

from __future__ import annotations

import warnings
from typing import Any, Mapping


class SchemaValidationError(ValueError):
    """Raised when engine params fail schema validation."""


def _matches(value: Any, expected_type: type[Any]) -> bool:
    if isinstance(value, bool):
        return expected_type is bool
    if expected_type is float:
        return isinstance(value, (int, float))
    return type(value) is expected_type


def validate_params(
    params: Mapping[str, Any],
    schema_module: Any,
    section: str = "params",
    strict: bool = True,
) -> dict[str, Any]:
    """Validate ``params`` against a schema module.

    The module provides ``REQUIRED_PARAMS``, ``DEFAULTS`` and
    ``OPTIONAL_PARAMS``. Defaults are applied first; ints are accepted where
    floats are expected. Unknown keys raise when ``strict`` and warn otherwise.
    """
    required: Mapping[str, type[Any]] = getattr(schema_module, "REQUIRED_PARAMS", {})
    defaults: Mapping[str, Any] = getattr(schema_module, "DEFAULTS", {})
    optional: Mapping[str, type[Any]] = getattr(schema_module, "OPTIONAL_PARAMS", {})

    if not isinstance(required, Mapping) or not isinstance(defaults, Mapping) or not isinstance(optional, Mapping):
        raise SchemaValidationError(
            f"Schema for '{section}' must define REQUIRED_PARAMS, DEFAULTS, OPTIONAL_PARAMS mappings."
        )

    merged = dict(defaults)
    merged.update(params)

    for key, expected_type in required.items():
        if key not in merged:
            raise SchemaValidationError(f"Section '{section}' missing required parameter '{key}'.")
        if not _matches(merged[key], expected_type):
            raise SchemaValidationError(
                f"Parameter '{section}.{key}' expected {expected_type.__name__}, got {type(merged[key]).__name__}."
            )

    for key, expected_type in optional.items():
        if key in merged and not _matches(merged[key], expected_type):
            raise SchemaValidationError(
                f"Parameter '{section}.{key}' expected {expected_type.__name__}, got {type(merged[key]).__name__}."
            )

    allowed = set(required) | set(optional) | set(defaults)
    extras = sorted(key for key in merged if key not in allowed)
    if extras:
        message = f"Unknown parameter(s) {extras} in section '{section}'."
        if strict:
            raise SchemaValidationError(message)
        warnings.warn(message, stacklevel=2)
        for key in extras:
            merged.pop(key)

    return merged
