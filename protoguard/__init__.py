"""protoguard: constraint evaluation for schema-described messages.

Usage:
    from protoguard import SchemaRegistry, Validator

    validator = Validator(SchemaRegistry.from_files("schemas/"))
    result = validator.validate({"email": "not-an-email"}, "acme.User")
    result.violations  # (Violation(field_path="email", constraint_id="string.email", ...),)
"""

from protoguard.errors import (
    EvaluationFault,
    ExpressionError,
    ProtoguardError,
    SchemaError,
    ValidationFailed,
)
from protoguard.log import configure_logging
from protoguard.models import FaultRecord, ValidationResult, Violation
from protoguard.schema import SchemaRegistry, load_schema, schema_from_dict
from protoguard.validators import Validator, ValidatorState

__version__ = "0.1.0"

__all__ = [
    "EvaluationFault",
    "ExpressionError",
    "FaultRecord",
    "ProtoguardError",
    "SchemaError",
    "SchemaRegistry",
    "ValidationFailed",
    "ValidationResult",
    "Validator",
    "ValidatorState",
    "Violation",
    "configure_logging",
    "load_schema",
    "schema_from_dict",
]
