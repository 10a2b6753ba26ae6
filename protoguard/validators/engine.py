"""Validator: the entry point for validating message instances.

Compiles each message type's rules once (through the compiled-rule cache),
traverses an instance, and returns a ValidationResult.

Usage:
    validator = Validator(SchemaRegistry.from_files("schemas/"))
    result = validator.validate({"email": "a@b.co"}, "acme.User")
    if not result.passed:
        for violation in result.violations:
            ...
"""

import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, Union

import structlog

from protoguard.config import get_settings
from protoguard.errors import EvaluationFault, ValidationFailed
from protoguard.expression.values import as_utc
from protoguard.models.violations import ValidationResult
from protoguard.rules.registry import RuleRegistry
from protoguard.schema.registry import SchemaRegistry
from protoguard.validators.base import EvalContext, Phase
from protoguard.validators.cache import CompiledRuleCache
from protoguard.validators.message import MessageEvaluator, build_message_evaluator

logger = structlog.get_logger()

FaultPolicy = Literal["raise", "collect"]


class ValidatorState(str, Enum):
    UNINITIALIZED = "uninitialized"  # Nothing compiled yet
    COMPILED = "compiled"            # Some types compiled on demand
    READY = "ready"                  # Every registered type compiled


class Validator:
    """Validates message instances against the rules attached to their schema.

    Design principles:
        - Deterministic: same instance, schema and ``now`` give the same result
        - Never short-circuits: every applicable rule is evaluated
        - Compile once: rule sets are compiled on first use and then shared
        - Observable: logs every validation run with timing
    """

    def __init__(
        self,
        schemas: SchemaRegistry,
        fault_policy: Optional[FaultPolicy] = None,
        max_depth: Optional[int] = None,
        eager: Optional[bool] = None,
    ):
        """Initialize with a schema registry.

        Args:
            schemas: Registry of every message and enum type
            fault_policy: "raise" or "collect"; defaults to settings
            max_depth: Nesting limit; defaults to settings
            eager: Compile every type now; defaults to settings
        """
        settings = get_settings()
        self.schemas = schemas
        self.fault_policy: FaultPolicy = fault_policy or settings.FAULT_POLICY
        self.max_depth = max_depth if max_depth is not None else settings.MAX_DEPTH
        if self.fault_policy not in ("raise", "collect"):
            raise ValueError(f"unknown fault policy '{self.fault_policy}'")

        self.rules = RuleRegistry(schemas)
        self._cache = CompiledRuleCache(schemas.closure, self._build)
        self.state = ValidatorState.UNINITIALIZED

        if eager is None:
            eager = settings.EAGER_COMPILE
        if eager:
            self.warm()

    @classmethod
    def from_files(cls, *paths: Union[str, Path], **kwargs: Any) -> "Validator":
        """Build a validator from schema files or directories."""
        return cls(SchemaRegistry.from_files(*paths), **kwargs)

    def _build(self, type_name: str) -> MessageEvaluator:
        return build_message_evaluator(self.rules.rules_for(type_name), self.schemas)

    # ── Compilation ──

    def compile(self, type_name: str) -> MessageEvaluator:
        """Compiled evaluator for ``type_name``.

        Raises:
            SchemaError: If the type is unknown or its rules are malformed
        """
        plan = self._cache.get(type_name)
        if self.state == ValidatorState.UNINITIALIZED:
            self.state = ValidatorState.COMPILED
        return plan

    def warm(self) -> None:
        """Compile every registered message type and mark the validator READY."""
        for type_name in self.schemas.message_names:
            self.compile(type_name)
        self.state = ValidatorState.READY
        logger.info("validator_ready", types=len(self._cache))

    @property
    def cache_stats(self) -> dict[str, int]:
        """``compilations`` (compile passes), ``hits`` (cache reuses), ``types`` (compiled)."""
        return self._cache.stats()

    # ── Validation ──

    def validate(
        self,
        message: Mapping[str, Any],
        type_name: str,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Validate one instance.

        Args:
            message: The instance, as a mapping of field name to value
            type_name: Full name of its message type
            now: Current time for rules that read ``now``; defaults to the clock

        Returns:
            ValidationResult with every violation (and, under the "collect"
            fault policy, every fault)

        Raises:
            SchemaError: If the type's rules do not compile
            EvaluationFault: Under the "raise" fault policy, when any rule
                could not be evaluated; raised after the full traversal
        """
        start_time = time.perf_counter()
        plan = self.compile(type_name)

        ctx = EvalContext(
            now=as_utc(now) if now is not None else datetime.now(timezone.utc),
            max_depth=self.max_depth,
            plans=self._cache.plans,
        )
        ctx.phase = Phase.TRAVERSING
        plan.evaluate(message, "", ctx)

        ctx.phase = Phase.COLLECTING
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        result = ctx.collector.result(type_name, duration_ms=duration_ms)
        ctx.phase = Phase.DONE

        logger.info(
            "validation_complete",
            type_name=type_name,
            passed=result.passed,
            violations=len(result.violations),
            faults=len(result.faults),
            summary=result.summary,
            duration_ms=duration_ms,
        )

        if result.faults and self.fault_policy == "raise":
            logger.warning(
                "evaluation_faults",
                type_name=type_name,
                faults=[str(f) for f in result.faults],
            )
            raise EvaluationFault(list(result.faults), result)
        return result

    def check(
        self,
        message: Mapping[str, Any],
        type_name: str,
        now: Optional[datetime] = None,
    ) -> ValidationResult:
        """Like validate(), but raise ValidationFailed when there are violations."""
        result = self.validate(message, type_name, now=now)
        if result.violations:
            raise ValidationFailed(result)
        return result
