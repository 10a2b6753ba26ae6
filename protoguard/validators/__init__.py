"""Validator: compiles rule sets and validates message instances.

Usage:
    from protoguard.validators import Validator

    result = validator.validate(message, "acme.User")
    if not result.passed:
        # Report result.violations
"""

from protoguard.validators.engine import Validator, ValidatorState
from protoguard.validators.base import BaseEvaluator, EvalContext, Phase
from protoguard.validators.collector import ViolationCollector

__all__ = [
    "BaseEvaluator",
    "EvalContext",
    "Phase",
    "Validator",
    "ValidatorState",
    "ViolationCollector",
]
