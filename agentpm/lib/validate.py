"""
Schema validation for agentpm's configuration files.

`.agentpm.json` and `.agentpm-hints.yaml` are checked against the JSON
Schemas bundled in agentpm/schemas before any field is read. Every violation
is collected, ordered by location, and reported in one ValidationError.
"""

import json
from pathlib import Path
from typing import Any, Iterator

import jsonschema


class ValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"

_validators: dict[str, jsonschema.Draft7Validator] = {}


def _validator(schema_name: str) -> jsonschema.Draft7Validator:
    """Compiled validator for a bundled schema, loaded once."""
    if schema_name not in _validators:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
        _validators[schema_name] = jsonschema.Draft7Validator(json.loads(schema_path.read_text()))
    return _validators[schema_name]


def _location(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path) or "(root)"


def iter_problems(data: Any, schema_name: str) -> Iterator[tuple[str, str]]:
    """Yield (location, message) for every violation, ordered by location."""
    errors = sorted(_validator(schema_name).iter_errors(data), key=lambda e: list(map(str, e.absolute_path)))
    for error in errors:
        yield _location(error), error.message


def validate(data: Any, schema_name: str) -> None:
    """
    Validate data against a bundled schema.

    Args:
        data: Parsed document (JSON or YAML)
        schema_name: Schema name ("config" or "hints")

    Raises:
        ValidationError: Naming the first violation, with a count of the rest
    """
    problems = list(iter_problems(data, schema_name))
    if not problems:
        return

    path, message = problems[0]
    if len(problems) > 1:
        message += f" (and {len(problems) - 1} more)"
    raise ValidationError(schema_name, message, path)
