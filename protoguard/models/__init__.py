from protoguard.models.rules import Rule, RuleKind, RuleScope, RuleTarget
from protoguard.models.schema import (
    Cardinality,
    EnumDescriptor,
    FieldDescriptor,
    FieldType,
    IgnoreMode,
    MessageDescriptor,
    OneofDescriptor,
    RuleSpec,
    SchemaDescriptor,
)
from protoguard.models.violations import FaultRecord, ValidationResult, Violation

__all__ = [
    "Cardinality",
    "EnumDescriptor",
    "FaultRecord",
    "FieldDescriptor",
    "FieldType",
    "IgnoreMode",
    "MessageDescriptor",
    "OneofDescriptor",
    "Rule",
    "RuleKind",
    "RuleScope",
    "RuleSpec",
    "RuleTarget",
    "SchemaDescriptor",
    "ValidationResult",
    "Violation",
]
