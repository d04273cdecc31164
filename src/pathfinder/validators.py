"""JSON Schema validation of configurations, queries and results.

Schemas are bundled under pathfinder/schemas and validated with jsonschema. Values may be
given as mappings (e.g. parsed from a settings file or received over an API) or as the
corresponding pathfinder objects, which are converted to their serialized form first.
"""
import dataclasses
import functools
import json
import os
from importlib import resources
from typing import Any, Mapping, NamedTuple

import jsonschema

from .config import PathfinderConfig
from .errors import PathfinderError, PathfinderErrorCode, Severity
from .types import PathfinderQuery, PathResult

SCHEMA_DIR = 'schemas'
CONFIG_SCHEMA = 'finder-config.schema.json'
QUERY_SCHEMA = 'query.schema.json'
PATH_RESULT_SCHEMA = 'path-result.schema.json'


class ValidationDiagnostic(NamedTuple):
    path: str
    message: str
    keyword: str | None = None


class ValidationResult(NamedTuple):
    valid: bool
    diagnostics: list[ValidationDiagnostic]


@functools.cache
def load_schema(name: str) -> dict[str, Any]:
    """Load a bundled JSON schema by filename."""
    return json.loads(resources.files('pathfinder').joinpath(SCHEMA_DIR, name).read_text(encoding='utf-8'))


@functools.cache
def _validator(name: str):
    schema = load_schema(name)
    return jsonschema.validators.validator_for(schema)(schema)


def _validate(instance: Any, schema_name: str) -> ValidationResult:
    diagnostics = [
        ValidationDiagnostic(
            path='/'.join(str(p) for p in error.absolute_path) or '/',
            message=error.message,
            keyword=error.validator,
        )
        for error in sorted(_validator(schema_name).iter_errors(instance), key=lambda e: list(e.absolute_path))
    ]
    return ValidationResult(not diagnostics, diagnostics)


def _to_plain(value: Any) -> Any:
    """Convert paths, named tuples and containers into JSON-compatible values."""
    if isinstance(value, (str, bool, int, float)) or value is None:
        return value
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    if isinstance(value, tuple) and hasattr(value, '_asdict'):
        return {k: _to_plain(v) for k, v in value._asdict().items()}
    if isinstance(value, Mapping):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


def validate_config(value: PathfinderConfig | Mapping[str, Any]) -> ValidationResult:
    if isinstance(value, PathfinderConfig):
        value = {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
    return _validate(_to_plain(value), CONFIG_SCHEMA)


def validate_query(value: PathfinderQuery | Mapping[str, Any]) -> ValidationResult:
    return _validate(_to_plain(value), QUERY_SCHEMA)


def validate_path_result(value: PathResult | Mapping[str, Any]) -> ValidationResult:
    if isinstance(value, PathResult):
        value = value.to_dict()
    return _validate(_to_plain(value), PATH_RESULT_SCHEMA)


def assert_valid_config(value: PathfinderConfig | Mapping[str, Any]) -> None:
    """Raise VALIDATION_FAILED if value is not a valid configuration."""
    _raise_if_invalid(validate_config(value), "Invalid pathfinder configuration")


def assert_valid_path_result(value: PathResult | Mapping[str, Any]) -> None:
    """Raise VALIDATION_FAILED if value is not a valid path result."""
    _raise_if_invalid(validate_path_result(value), "Invalid path result")


def _raise_if_invalid(result: ValidationResult, prefix: str) -> None:
    if result.valid:
        return

    messages = ', '.join(d.message for d in result.diagnostics)
    raise PathfinderError(PathfinderErrorCode.VALIDATION_FAILED, f"{prefix}: {messages}", severity=Severity.HIGH,
                          context={'diagnostics': [d._asdict() for d in result.diagnostics]})
