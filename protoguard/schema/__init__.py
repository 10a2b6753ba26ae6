"""Schema descriptors: loading from files and full-name lookup."""

from protoguard.schema.loader import clear_cache, load_schema, load_schema_file, schema_from_dict
from protoguard.schema.registry import SchemaRegistry

__all__ = ["SchemaRegistry", "clear_cache", "load_schema", "load_schema_file", "schema_from_dict"]
