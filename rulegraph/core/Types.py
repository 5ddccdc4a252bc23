import math
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional


class NodeKind(Enum):
    CONDITION = "condition"
    LOGIC = "logic"
    ACTION = "action"

    @staticmethod
    def parse(value: Any) -> 'NodeKind':
        if isinstance(value, NodeKind):
            return value
        try:
            return NodeKind(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown node kind '{value}'") from None


class Combinator(Enum):
    AND = "AND"
    OR = "OR"

    @staticmethod
    def parse(value: Any) -> 'Combinator':
        if isinstance(value, Combinator):
            return value
        try:
            return Combinator(str(value).upper())
        except ValueError:
            raise ValueError(f"Unknown combinator '{value}' (expected AND or OR)") from None


_SCALAR_TYPES = (str, int, float, bool)


def _is_scalar(value: Any) -> bool:
    # NaN and the infinities have no JSON spelling
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return isinstance(value, _SCALAR_TYPES)


class ValueArity(Enum):
    SINGLE = "single"
    RANGE = "range"
    LIST = "list"
    NONE = "none"

    @staticmethod
    def validate(value: Any, arity: 'ValueArity') -> bool:
        if arity == ValueArity.NONE:
            return value is None
        if arity == ValueArity.SINGLE:
            return _is_scalar(value)
        if arity == ValueArity.RANGE:
            return (isinstance(value, (list, tuple))
                    and len(value) == 2
                    and all(_is_scalar(v) for v in value))
        if arity == ValueArity.LIST:
            return (isinstance(value, (list, tuple))
                    and len(value) > 0
                    and all(_is_scalar(v) for v in value))
        return False

    @staticmethod
    def normalize(value: Any) -> Any:
        """Lists become tuples so condition payloads stay hashable."""
        if isinstance(value, list):
            return tuple(value)
        return value


class Operator(Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    BETWEEN = "between"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"

    @property
    def arity(self) -> ValueArity:
        return _OPERATOR_ARITY[self]

    @property
    def label(self) -> str:
        return _OPERATOR_LABELS[self]

    @staticmethod
    def parse(value: Any) -> 'Operator':
        if isinstance(value, Operator):
            return value
        try:
            return Operator(str(value))
        except ValueError:
            raise ValueError(f"Unknown operator '{value}'") from None


_OPERATOR_ARITY: Dict[Operator, ValueArity] = {
    Operator.EQ: ValueArity.SINGLE,
    Operator.NEQ: ValueArity.SINGLE,
    Operator.GT: ValueArity.SINGLE,
    Operator.GTE: ValueArity.SINGLE,
    Operator.LT: ValueArity.SINGLE,
    Operator.LTE: ValueArity.SINGLE,
    Operator.CONTAINS: ValueArity.SINGLE,
    Operator.STARTS_WITH: ValueArity.SINGLE,
    Operator.ENDS_WITH: ValueArity.SINGLE,
    Operator.IN: ValueArity.LIST,
    Operator.NOT_IN: ValueArity.LIST,
    Operator.BETWEEN: ValueArity.RANGE,
    Operator.IS_EMPTY: ValueArity.NONE,
    Operator.IS_NOT_EMPTY: ValueArity.NONE,
}

_OPERATOR_LABELS: Dict[Operator, str] = {
    Operator.EQ: "equals",
    Operator.NEQ: "not equals",
    Operator.GT: "greater than",
    Operator.GTE: "greater or equal",
    Operator.LT: "less than",
    Operator.LTE: "less or equal",
    Operator.CONTAINS: "contains",
    Operator.STARTS_WITH: "starts with",
    Operator.ENDS_WITH: "ends with",
    Operator.IN: "in list",
    Operator.NOT_IN: "not in list",
    Operator.BETWEEN: "between",
    Operator.IS_EMPTY: "is empty",
    Operator.IS_NOT_EMPTY: "is not empty",
}


# Field catalogue offered by the condition picker. Not enforced by the compiler:
# any dot path is accepted.
class FieldConfig(NamedTuple):
    field: str
    label: str
    type: str       # "string" | "number" | "boolean" | "date" | "array"
    category: str   # "event" | "user" | "order" | "time"


PRESET_FIELDS: List[FieldConfig] = [
    FieldConfig("event.type", "Event type", "string", "event"),
    FieldConfig("event.name", "Event name", "string", "event"),
    FieldConfig("event.timestamp", "Event time", "date", "event"),
    FieldConfig("user.level", "User level", "number", "user"),
    FieldConfig("user.points", "User points", "number", "user"),
    FieldConfig("user.registerDays", "Days since registration", "number", "user"),
    FieldConfig("user.tags", "User tags", "array", "user"),
    FieldConfig("order.amount", "Order amount", "number", "order"),
    FieldConfig("order.count", "Order count", "number", "order"),
    FieldConfig("order.status", "Order status", "string", "order"),
    FieldConfig("time.hour", "Hour of day", "number", "time"),
    FieldConfig("time.dayOfWeek", "Day of week", "number", "time"),
    FieldConfig("time.dayOfMonth", "Day of month", "number", "time"),
]


def find_preset_field(path: str) -> Optional[FieldConfig]:
    for preset in PRESET_FIELDS:
        if preset.field == path:
            return preset
    return None
