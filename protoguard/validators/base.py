"""Base evaluator: abstract class implementing the Strategy Pattern.

A message type compiles into a tree of evaluators, one per message and one
per field. Each is a standalone, independently testable unit that reports
into the shared ViolationCollector of the current run.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from protoguard.errors import EvaluationError
from protoguard.validators.collector import ViolationCollector

if TYPE_CHECKING:
    from protoguard.validators.checks import CompiledRule


class Phase(str, Enum):
    """Per-call progress of a validation run."""

    IDLE = "idle"
    TRAVERSING = "traversing"
    COLLECTING = "collecting"
    DONE = "done"


@dataclass
class EvalContext:
    """State for one validation call. Never shared between calls."""

    now: datetime
    max_depth: int
    plans: Mapping[str, "BaseEvaluator"]
    collector: ViolationCollector = field(default_factory=ViolationCollector)
    depth: int = 0
    phase: Phase = Phase.IDLE


class BaseEvaluator(ABC):
    """Abstract base for compiled evaluators.

    Contract:
        - evaluate() is deterministic: same input and ``now`` give the same output
        - evaluate() never mutates the value it is given
        - rule failures are reported to ``ctx.collector``, never raised
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for logging."""
        ...

    @abstractmethod
    def evaluate(self, value: Any, path: str, ctx: EvalContext) -> None:
        """Check ``value`` and report findings.

        Args:
            value: The value under validation (message mapping or field value)
            path: Field path of ``value`` from the root message
            ctx: Run context holding the collector and injected time
        """
        ...

    # ── Helper Methods ──

    def _run_rules(
        self,
        rules: Iterable["CompiledRule"],
        value: Any,
        path: str,
        ctx: EvalContext,
        for_key: bool = False,
    ) -> None:
        """Run every rule on ``value``; violations and faults go to the collector."""
        for compiled in rules:
            try:
                message = compiled.run(value, ctx.now)
            except EvaluationError as e:
                ctx.collector.fault(path, compiled.id, str(e))
                continue
            if message is not None:
                ctx.collector.violation(path, compiled.id, message, for_key=for_key)

    def _descend(self, type_name: str, value: Any, path: str, ctx: EvalContext) -> None:
        """Validate a nested message, recording a fault past the depth limit."""
        if ctx.depth >= ctx.max_depth:
            ctx.collector.fault(path, "max_depth", f"nesting exceeds the maximum depth of {ctx.max_depth}")
            return
        ctx.depth += 1
        try:
            ctx.plans[type_name].evaluate(value, path, ctx)
        finally:
            ctx.depth -= 1
