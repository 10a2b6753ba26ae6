"""Compiled-rule cache: one MessageEvaluator per message type, built once.

Compilation happens under a single lock and covers a type together with
every type it references. Finished plans are published only when the whole
closure compiled, and the first plan stored for a type is the one kept.
A failed compilation publishes nothing; the next request compiles again
and raises the same SchemaError.
"""

import threading
import time
from typing import Callable, Mapping

import structlog

from protoguard.validators.message import MessageEvaluator

logger = structlog.get_logger()


class CompiledRuleCache:
    """Maps message full names to compiled evaluators.

    Reads after publication take no lock. The hit counter is bumped without
    a lock, so it is exact for single-threaded use and approximate otherwise.
    """

    def __init__(
        self,
        closure: Callable[[str], list[str]],
        build: Callable[[str], MessageEvaluator],
    ):
        self._closure = closure
        self._build = build
        self._plans: dict[str, MessageEvaluator] = {}
        self._lock = threading.Lock()
        self.compilations = 0
        self.hits = 0

    @property
    def plans(self) -> Mapping[str, MessageEvaluator]:
        return self._plans

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._plans

    def __len__(self) -> int:
        return len(self._plans)

    def get(self, type_name: str) -> MessageEvaluator:
        """Evaluator for ``type_name``, compiling it (and its references) on first use.

        Raises:
            SchemaError: If the type or anything it references fails to compile
        """
        plan = self._plans.get(type_name)
        if plan is not None:
            self.hits += 1
            return plan

        with self._lock:
            plan = self._plans.get(type_name)
            if plan is not None:
                self.hits += 1
                return plan
            self._compile(type_name)
            return self._plans[type_name]

    def _compile(self, type_name: str) -> None:
        start_time = time.perf_counter()
        names = [name for name in self._closure(type_name) if name not in self._plans]
        fresh = {name: self._build(name) for name in names}

        # Referenced types go in before the root so a reader that finds the
        # root can always find everything under it.
        for name in reversed(names):
            self._plans.setdefault(name, fresh[name])
        self.compilations += 1

        logger.info(
            "type_compiled",
            type_name=type_name,
            types=len(fresh),
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )

    def stats(self) -> dict[str, int]:
        return {"compilations": self.compilations, "hits": self.hits, "types": len(self._plans)}
