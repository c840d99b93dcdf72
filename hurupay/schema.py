"""JSON Schema validation for relay wire payloads.

Schemas live in ``hurupay/schemas`` and may reference each other by
relative ``$ref``; all of them are loaded into one registry so references
resolve without network access. Validators are cached per schema.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from hurupay.hardening import ValidationError, ValidationErrors

SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"

AUTHORIZATION_REQUEST_SCHEMA = "authorization-request.schema.json"


def load_schema(name: str) -> Dict[str, Any]:
    path = SCHEMAS_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"Unknown schema: {name}")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=1)
def _schema_registry() -> Registry:
    """Registry of every bundled schema, keyed by its ``$id``."""
    resources = []
    for schema_path in sorted(SCHEMAS_DIR.glob("*.schema.json")):
        schema = load_schema(schema_path.name)
        schema_id = schema.get("$id") or f"https://schemas.hurupay.io/{schema_path.name}"
        resources.append(
            (schema_id, Resource.from_contents(schema, default_specification=DRAFT202012))
        )
    return Registry().with_resources(resources)


@lru_cache(maxsize=None)
def schema_validator(name: str) -> Draft202012Validator:
    """Create (once) a validator for a bundled schema.

    Args:
        name: file name under ``hurupay/schemas``

    Returns:
        A configured Draft202012Validator
    """
    return Draft202012Validator(load_schema(name), registry=_schema_registry())


def validate_against_schema(obj: Any, name: str) -> List[str]:
    """Validate an object against a bundled schema.

    Returns:
        List of validation error messages (empty if valid)
    """
    validator = schema_validator(name)
    return [
        f"{error.json_path}: {error.message}"
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]


def require_valid(obj: Any, name: str) -> None:
    """Raise ValidationErrors listing every schema violation of ``obj``."""
    validator = schema_validator(name)
    errors = [
        ValidationError(error.json_path, error.message, error.instance)
        for error in sorted(validator.iter_errors(obj), key=lambda e: e.json_path)
    ]
    if errors:
        raise ValidationErrors(errors)
