"""Exception hierarchy.

Schema-level problems are exceptions raised while loading or compiling rules.
Instance-level violations are never raised here; they are returned as data in
a ValidationResult. A broken rule discovered while validating an instance is an
EvaluationFault, which is distinct from both.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from protoguard.models.violations import FaultRecord, ValidationResult


class ProtoguardError(Exception):
    """Base exception for the library."""


class SchemaError(ProtoguardError):
    """A schema descriptor or one of its rules is malformed.

    Fatal for the message type that contains it.
    """

    def __init__(self, message: str, location: Optional[str] = None) -> None:
        self.location = location
        self.reason = message
        super().__init__(f"{location}: {message}" if location else message)


class ExpressionError(SchemaError):
    """An expression failed to parse or type-check at compile time."""

    def __init__(
        self,
        message: str,
        expression: str = "",
        position: Optional[int] = None,
        location: Optional[str] = None,
    ) -> None:
        self.expression = expression
        self.position = position
        self.message = message
        detail = message
        if expression:
            detail = f"{message} in {expression!r}"
            if position is not None:
                detail += f" at offset {position}"
        super().__init__(detail, location=location)


class EvaluationError(ProtoguardError):
    """Raised inside the evaluator when a rule cannot be evaluated on a value.

    The validator converts these into FaultRecords; callers see them only
    through EvaluationFault.
    """


class EvaluationFault(ProtoguardError):
    """One or more rules broke while validating an instance.

    Carries every fault from the run along with the result collected so far,
    so callers can still inspect the violations that were found.
    """

    def __init__(self, faults: list["FaultRecord"], result: Optional["ValidationResult"] = None) -> None:
        self.faults = faults
        self.result = result
        first = faults[0] if faults else None
        if first is None:
            message = "rule evaluation fault"
        else:
            message = f"{len(faults)} rule evaluation fault(s); first: {first}"
        super().__init__(message)


class ValidationFailed(ProtoguardError):
    """Raised by Validator.check() when an instance has violations."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result = result
        count = len(result.violations)
        first = result.violations[0] if result.violations else None
        message = f"{count} violation(s)"
        if first is not None:
            message += f"; first: {first}"
        super().__init__(message)

    @property
    def violations(self):
        return self.result.violations
