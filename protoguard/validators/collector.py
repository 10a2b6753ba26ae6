"""Violation collector and field path rendering.

Paths look like ``a.b``, ``items[1].x`` and ``settings["timeout"].value``.
String map keys are quoted; integer and bool keys are not.
"""

import json
from typing import Any, Optional

from protoguard.models.violations import FaultRecord, ValidationResult, Violation


def join_field(parent: str, name: str) -> str:
    return f"{parent}.{name}" if parent else name


def join_index(parent: str, index: int) -> str:
    return f"{parent}[{index}]"


def join_key(parent: str, key: Any) -> str:
    if isinstance(key, bool):
        rendered = "true" if key else "false"
    elif isinstance(key, str):
        rendered = json.dumps(key, ensure_ascii=False)
    else:
        rendered = str(key)
    return f"{parent}[{rendered}]"


class ViolationCollector:
    """Accumulates violations and faults for one validation call.

    Never short-circuits: every rule that applies is evaluated and every
    failure is kept, in the order it was reported.
    """

    def __init__(self) -> None:
        self.violations: list[Violation] = []
        self.faults: list[FaultRecord] = []

    def violation(self, field_path: str, constraint_id: str, message: str, for_key: bool = False) -> None:
        self.violations.append(Violation(
            field_path=field_path,
            constraint_id=constraint_id,
            message=message,
            for_key=for_key,
        ))

    def fault(self, field_path: str, constraint_id: str, reason: str) -> None:
        self.faults.append(FaultRecord(field_path=field_path, constraint_id=constraint_id, reason=reason))

    def result(self, type_name: str, duration_ms: Optional[float] = None) -> ValidationResult:
        return ValidationResult(
            type_name=type_name,
            violations=tuple(self.violations),
            faults=tuple(self.faults),
            duration_ms=duration_ms,
        )
