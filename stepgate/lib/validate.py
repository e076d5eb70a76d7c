"""
Schema validation for stepgate.

Enforces JSON Schema validation at every data boundary: persisted
session snapshots and worker output. Fails hard with clear errors when
data doesn't match schema.
"""

import json
from pathlib import Path

import jsonschema
from jsonschema.exceptions import best_match

from stepgate.lib.errors import StepgateError


class ValidationError(StepgateError):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"

# Validators by schema name, built once per process
_validators: dict = {}


def _get_validator(schema_name: str):
    if schema_name not in _validators:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        schema = json.loads(schema_path.read_text())
        cls = jsonschema.validators.validator_for(schema)
        cls.check_schema(schema)
        _validators[schema_name] = cls(schema)
    return _validators[schema_name]


def validate(data: dict, schema_name: str) -> None:
    """
    Validate data against named schema.

    Only the most relevant error is reported when several apply.

    Raises:
        ValidationError: If validation fails
    """
    error = best_match(_get_validator(schema_name).iter_errors(data))
    if error is not None:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        raise ValidationError(schema_name, error.message, path)


def validate_file(filepath: Path, schema_name: str) -> dict:
    """
    Load JSON file and validate against schema.

    Returns:
        Parsed and validated data

    Raises:
        ValidationError: If file invalid or doesn't match schema
    """
    if not filepath.exists():
        raise ValidationError(schema_name, f"File not found: {filepath}")

    try:
        data = json.loads(filepath.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(schema_name, f"Invalid JSON in {filepath}: {e}") from None

    validate(data, schema_name)
    return data


def validate_before_write(data: dict, schema_name: str, filepath: Path) -> None:
    """Validate data before writing to file. Ensures we never write invalid data."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name,
            f"Refusing to write invalid data to {filepath}: {e}"
        ) from None
