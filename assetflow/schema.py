"""JSON Schema validation infrastructure.

Provides the schema validation used for stored records and deployment config:
- Automatic schema resolution via $ref
- Cross-reference registry for every schema under ``schemas/``
- Cached validators
- Clear error reporting
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, List

from jsonschema import Draft202012Validator
from referencing import Registry, Resource
from referencing.jsonschema import DRAFT202012

from assetflow.core import SCHEMAS_DIR, load_json


@lru_cache(maxsize=1)
def _schema_registry(schemas_dir: Path = SCHEMAS_DIR) -> Registry:
    """Build a registry of every ``*.schema.json`` so ``$ref`` resolves by ``$id``."""
    if not schemas_dir.is_dir():
        return Registry()

    resources = []
    for schema_path in sorted(schemas_dir.glob("**/*.schema.json")):
        schema = load_json(schema_path)
        if not isinstance(schema, dict):
            continue
        schema_id = schema.get("$id") or f"https://schemas.assetflow.dev/{schema_path.name}"
        resource = Resource.from_contents(schema, default_specification=DRAFT202012)
        resources.append((schema_id, resource))

    return Registry().with_resources(resources)


@lru_cache(maxsize=32)
def schema_validator(schema_name: str, schemas_dir: Path = SCHEMAS_DIR) -> Draft202012Validator:
    """Create (and cache) a validator for ``schemas/<schema_name>``.

    Args:
        schema_name: File name of the schema, e.g. ``asset.v1.schema.json``
        schemas_dir: Directory holding the schema corpus

    Returns:
        A configured Draft202012Validator
    """
    schema = load_json(schemas_dir / schema_name)
    return Draft202012Validator(schema, registry=_schema_registry(schemas_dir))


def validation_errors(schema_name: str, instance: Any) -> List[str]:
    """Return human-readable schema errors for instance, sorted by location."""
    validator = schema_validator(schema_name)
    errors = sorted(validator.iter_errors(instance), key=lambda e: list(e.absolute_path))
    out: List[str] = []
    for err in errors:
        loc = "/".join(str(p) for p in err.absolute_path) or "<root>"
        out.append(f"{loc}: {err.message}")
    return out
