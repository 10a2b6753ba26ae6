"""Validation output models: violations, fault records, and the result object.

A ValidationResult is created fresh for every validation call and is never
mutated after the validator hands it back.
"""

from collections import Counter
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Violation(BaseModel):
    """A single rule failure for one instance."""

    model_config = ConfigDict(frozen=True)

    field_path: str = Field(default="", description="Dotted/indexed path; empty for the root message")
    constraint_id: str
    message: str
    for_key: bool = Field(default=False, description="True when the map key, not the value, failed")

    def __str__(self) -> str:
        location = self.field_path or "<message>"
        return f"{location}: {self.message} [{self.constraint_id}]"


class FaultRecord(BaseModel):
    """A rule that could not be evaluated. Indicates a broken rule, not bad data."""

    model_config = ConfigDict(frozen=True)

    field_path: str = ""
    constraint_id: str
    reason: str

    def __str__(self) -> str:
        location = self.field_path or "<message>"
        return f"{location}: {self.reason} [{self.constraint_id}]"


class ValidationResult(BaseModel):
    """Outcome of one validation call."""

    model_config = ConfigDict(frozen=True)

    type_name: str
    violations: tuple[Violation, ...] = ()
    faults: tuple[FaultRecord, ...] = ()
    duration_ms: Optional[float] = Field(default=None, exclude=True)

    @property
    def passed(self) -> bool:
        """True if no violations and no faults were recorded."""
        return not self.violations and not self.faults

    @property
    def summary(self) -> dict[str, int]:
        """Count of violations per constraint id, in first-seen order."""
        return dict(Counter(v.constraint_id for v in self.violations))

    def for_path(self, field_path: str) -> list[Violation]:
        """Violations reported at exactly ``field_path``."""
        return [v for v in self.violations if v.field_path == field_path]

    def to_dict(self) -> dict:
        """Convert to a plain dict suitable for JSON output."""
        return {
            "type_name": self.type_name,
            "passed": self.passed,
            "violations": [v.model_dump() for v in self.violations],
            "faults": [f.model_dump() for f in self.faults],
        }
