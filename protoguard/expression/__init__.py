"""Rule expression language: a CEL subset.

Usage:
    from protoguard.expression import compile_expression, types

    program = compile_expression("size(this) > 3", types.STRING)
    program.evaluate({"this": "hello", "now": now})  # True
"""

from protoguard.expression import types
from protoguard.expression.evaluator import Program, compile_expression
from protoguard.expression.parser import parse
from protoguard.expression.values import MessageView

__all__ = ["MessageView", "Program", "compile_expression", "parse", "types"]
