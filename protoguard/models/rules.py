"""Rule model: a declarative constraint extracted from schema metadata."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class RuleTarget(str, Enum):
    FIELD = "field"
    MESSAGE = "message"


class RuleKind(str, Enum):
    STANDARD = "standard"      # Parameterised check from the standard library
    EXPRESSION = "expression"  # Custom expression
    PRESENCE = "presence"      # required fields and oneof groups


class RuleScope(str, Enum):
    """Which value a field rule is applied to."""

    VALUE = "value"   # The field value itself (whole list/map for collections)
    ITEMS = "items"   # Each element of a repeated field
    KEYS = "keys"     # Each key of a map field
    VALUES = "values"  # Each value of a map field


class Rule(BaseModel):
    """One constraint attached to a field or message.

    Immutable after schema load. ``id`` is unique within its attachment point
    and doubles as the violation's constraint id.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    target: RuleTarget
    kind: RuleKind
    owner: str                          # Full name of the message type
    field: Optional[str] = None         # Field name for field rules
    scope: RuleScope = RuleScope.VALUE
    key: Optional[str] = None           # Standard-library key (e.g. "min_len")
    family: Optional[str] = None        # Standard-library family (e.g. "string")
    params: Any = None
    expression: Optional[str] = None
    message: str = ""

    @property
    def attachment(self) -> str:
        """Human-readable attachment point, used in error locations."""
        if self.field is None:
            return self.owner
        if self.scope == RuleScope.VALUE:
            return f"{self.owner}.{self.field}"
        return f"{self.owner}.{self.field}.{self.scope.value}"
