"""Schema loader: reads schema descriptors from dicts, JSON files, or YAML files.

Files are parsed once per process and cached by resolved path.
"""

import json
from pathlib import Path
from typing import Any, Optional, Union

import structlog
import yaml
from pydantic import ValidationError

from protoguard.errors import SchemaError
from protoguard.models.schema import SchemaDescriptor

logger = structlog.get_logger()

SCHEMA_SUFFIXES = (".json", ".yaml", ".yml")

# Cache parsed files to avoid re-reading from disk
_schema_cache: dict[Path, SchemaDescriptor] = {}


def schema_from_dict(data: Any, source: Optional[str] = None) -> SchemaDescriptor:
    """Build a SchemaDescriptor from plain data.

    Args:
        data: Parsed schema document (mapping with package/messages/enums)
        source: Where the data came from, used in error locations

    Returns:
        The validated descriptor

    Raises:
        SchemaError: If the document does not describe a valid schema
    """
    if not isinstance(data, dict):
        raise SchemaError("schema document must be a mapping", location=source)

    try:
        schema = SchemaDescriptor.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        location = f"{source}:{where}" if source else where
        raise SchemaError(first["msg"], location=location) from e

    if source:
        schema = schema.model_copy(update={"source": source})
    return schema


def _parse_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SchemaError(f"cannot read schema file: {e}", location=str(path)) from e
    try:
        if path.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise SchemaError(f"cannot parse schema file: {e}", location=str(path)) from e


def load_schema_file(path: Union[str, Path]) -> SchemaDescriptor:
    """Load and cache a single schema file."""
    resolved = Path(path).resolve()
    cached = _schema_cache.get(resolved)
    if cached is not None:
        return cached

    if resolved.suffix not in SCHEMA_SUFFIXES:
        raise SchemaError(
            f"unsupported schema file type '{resolved.suffix}', expected one of {', '.join(SCHEMA_SUFFIXES)}",
            location=str(resolved),
        )
    if not resolved.is_file():
        raise SchemaError("schema file not found", location=str(resolved))

    schema = schema_from_dict(_parse_file(resolved), source=str(resolved))
    _schema_cache[resolved] = schema

    logger.info(
        "schema_loaded",
        path=str(resolved),
        package=schema.package,
        messages=len(schema.messages),
        enums=len(schema.enums),
    )
    return schema


def load_schema(path: Union[str, Path]) -> list[SchemaDescriptor]:
    """Load a schema file, or every schema file in a directory (sorted by name).

    Args:
        path: File or directory path

    Returns:
        Descriptors in load order
    """
    path = Path(path)
    if path.is_dir():
        files = sorted(p for p in path.iterdir() if p.suffix in SCHEMA_SUFFIXES and p.is_file())
        return [load_schema_file(p) for p in files]
    return [load_schema_file(path)]


def clear_cache() -> None:
    """Forget every cached schema file."""
    _schema_cache.clear()
