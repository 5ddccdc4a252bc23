"""
Rule Compiler — Rule JSON Schema + Validator
=============================================
Defines the canonical wire format for compiled rules and converts between it
and RuleDefinition, rejecting malformed input with a path-qualified
SchemaError instead of an opaque parse failure.

Canonical JSON format
---------------------

    {
      "root": {
        "targetId": "badge-1",           // thing to grant (str, required, non-empty)
        "quantity": 1                    // integer >= 1 (required)
      },
      "expression": {                    // a Condition ...
        "field":    "user.level",        // dot path (str, required)
        "operator": "gte",               // Operator value (str, required)
        "value":    5                    // scalar | [lo, hi] | [a, b, ...] | null
      }
    }

    "expression": {                      // ... or a Group
      "combinator": "AND",               // "AND" | "OR"
      "children":   [ <Condition|Group>, ... ]   // at least one
    }

Key order in every object is fixed as shown; the serializer relies on it for
byte-stable output.
"""

from __future__ import annotations

from typing import Any, Dict, List

from rulegraph.core.Types import Combinator, Operator, ValueArity

from .errors import SchemaError
from .ir import Action, Condition, Expression, Group, RuleDefinition


# ── Validation helpers ────────────────────────────────────────────────────────

def _require(condition: bool, message: str) -> None:
    if not condition:
        raise SchemaError(message)


def _require_keys(obj: Dict, keys: List[str], context: str) -> None:
    for key in keys:
        _require(key in obj, f"{context}: missing required field '{key}'")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ── dict → RuleDefinition ─────────────────────────────────────────────────────

def _action_from_dict(data: Any, ctx: str) -> Action:
    _require(isinstance(data, dict), f"{ctx} must be an object")
    _require_keys(data, ["targetId", "quantity"], ctx)
    _require(isinstance(data["targetId"], str) and data["targetId"] != "",
             f"{ctx}.targetId must be a non-empty string")
    quantity = data["quantity"]
    _require(_is_int(quantity), f"{ctx}.quantity must be an integer, got {quantity!r}")
    _require(quantity >= 1, f"{ctx}.quantity must be at least 1, got {quantity}")
    return Action(data["targetId"], quantity)


def _condition_from_dict(data: Dict, ctx: str) -> Condition:
    _require_keys(data, ["field", "operator"], ctx)
    _require(isinstance(data["field"], str) and data["field"] != "",
             f"{ctx}.field must be a non-empty string")
    try:
        operator = Operator.parse(data["operator"])
    except ValueError as exc:
        raise SchemaError(f"{ctx}.operator: {exc}") from None

    if operator.arity != ValueArity.NONE:
        _require("value" in data, f"{ctx}: missing required field 'value' for operator '{operator.value}'")
    value = data.get("value")
    _require(
        ValueArity.validate(value, operator.arity),
        f"{ctx}.value {value!r} does not fit operator '{operator.value}' (expects {operator.arity.value})",
    )
    return Condition(data["field"], operator, value)


def _group_from_dict(data: Dict, ctx: str) -> Group:
    _require_keys(data, ["combinator", "children"], ctx)
    try:
        combinator = Combinator.parse(data["combinator"])
    except ValueError as exc:
        raise SchemaError(f"{ctx}.combinator: {exc}") from None
    _require(data["combinator"] == combinator.value,
             f"{ctx}.combinator must be exactly 'AND' or 'OR', got {data['combinator']!r}")
    children = data["children"]
    _require(isinstance(children, list), f"{ctx}.children must be a list")
    _require(len(children) > 0, f"{ctx}.children must not be empty")
    return Group(combinator, tuple(
        expression_from_dict(child, f"{ctx}.children[{i}]") for i, child in enumerate(children)
    ))


def expression_from_dict(data: Any, ctx: str = "expression") -> Expression:
    _require(isinstance(data, dict), f"{ctx} must be an object")
    if "combinator" in data or "children" in data:
        return _group_from_dict(data, ctx)
    return _condition_from_dict(data, ctx)


def rule_from_dict(data: Any) -> RuleDefinition:
    """
    Validate a parsed rule dict and build a RuleDefinition.

    Raises:
        SchemaError: On any structural violation.
    """
    _require(isinstance(data, dict), "rule JSON must be a JSON object at the top level")
    _require_keys(data, ["root", "expression"], "rule")
    return RuleDefinition(
        root=_action_from_dict(data["root"], "root"),
        expression=expression_from_dict(data["expression"]),
    )


# ── RuleDefinition → dict ─────────────────────────────────────────────────────

def value_to_json(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    return value


def expression_to_dict(expr: Expression) -> Dict[str, Any]:
    if isinstance(expr, Condition):
        return {
            "field": expr.field,
            "operator": expr.operator.value,
            "value": value_to_json(expr.value),
        }
    if isinstance(expr, Group):
        return {
            "combinator": expr.combinator.value,
            "children": [expression_to_dict(c) for c in expr.children],
        }
    raise TypeError(f"Unsupported expression {type(expr).__name__}")


def rule_to_dict(rule: RuleDefinition) -> Dict[str, Any]:
    return {
        "root": {
            "targetId": rule.root.target_id,
            "quantity": rule.root.quantity,
        },
        "expression": expression_to_dict(rule.expression),
    }


__all__ = ["SchemaError", "rule_from_dict", "rule_to_dict", "expression_from_dict", "expression_to_dict"]
