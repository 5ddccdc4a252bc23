"""
Rule Compiler — Compiled Rule Representation
============================================
RuleDefinition is the tree-shaped artifact produced from an editor graph and
consumed by the evaluation engine.

    Graph  →  [extractor.graph_to_rule]   →  RuleDefinition
    RuleDefinition  →  [serializer]       →  canonical JSON str
    RuleDefinition  →  [decompiler]       →  Graph

Unlike the editor graph, the compiled form is a tree: one Action root and
either a single Condition or a Group of ordered children. It carries no node
ids or positions and is never mutated; it is recomputed from the graph on
every save or test.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Tuple, Union

from rulegraph.core.Types import Combinator, Operator, ValueArity


# ── Expression leaves and groups ─────────────────────────────────────────────

@dataclass(frozen=True)
class Condition:
    field: str
    operator: Operator
    value: Any = None

    def __post_init__(self):
        object.__setattr__(self, "operator", Operator.parse(self.operator))
        object.__setattr__(self, "value", ValueArity.normalize(self.value))


@dataclass(frozen=True)
class Group:
    combinator: Combinator
    children: Tuple["Expression", ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "combinator", Combinator.parse(self.combinator))
        object.__setattr__(self, "children", tuple(self.children))


Expression = Union[Condition, Group]


# ── Root ─────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Action:
    target_id: str
    quantity: int = 1


@dataclass(frozen=True)
class RuleDefinition:
    root: Action
    expression: Expression


# ── Rule metadata ────────────────────────────────────────────────────────────
# Required by the publishing side, not by the evaluation engine, so it lives
# beside the definition rather than inside it.

@dataclass
class RuleMetadata:
    name: str = ""
    rule_code: str = ""
    event_type: str = ""
    description: str = ""
    tags: Tuple[str, ...] = field(default_factory=tuple)


def iter_conditions(expression: Expression):
    """Yield (path, Condition) for every leaf, depth first, in child order."""
    def walk(expr: Expression, path: str):
        if isinstance(expr, Condition):
            yield path, expr
        elif isinstance(expr, Group):
            for index, child in enumerate(expr.children):
                yield from walk(child, f"{path}.{index}" if path else str(index))
        else:
            raise TypeError(f"Unsupported expression {type(expr).__name__}")

    yield from walk(expression, "")
