"""
Rule Compiler
=============
Turns an editor Graph into the tree-shaped RuleDefinition the evaluation
engine consumes, and back.

Pipeline
--------
    Graph           →  [extractor]    →  RuleDefinition (+ source map)
    RuleDefinition  →  [serializer]   →  canonical JSON str
    JSON str        →  [schema]       →  RuleDefinition
    RuleDefinition  →  [decompiler]   →  Graph

Public API
----------
    from rulegraph.compiler import graph_to_rule, serialize_rule

    rule = graph_to_rule(graph)
    text = serialize_rule(rule)
"""

from __future__ import annotations

from .decompiler import rule_to_graph
from .errors import CompilationError, RuleValidationError, SchemaError
from .extractor import CompiledRule, compile_graph, graph_to_rule
from .ir import Action, Condition, Expression, Group, RuleDefinition, RuleMetadata, iter_conditions
from .schema import rule_from_dict, rule_to_dict
from .serializer import deserialize_rule, load_rule_file, serialize_rule
from .validation import RuleValidation, validate_rule

__all__ = [
    "Action",
    "CompilationError",
    "CompiledRule",
    "Condition",
    "Expression",
    "Group",
    "RuleDefinition",
    "RuleMetadata",
    "RuleValidation",
    "RuleValidationError",
    "SchemaError",
    "compile_graph",
    "deserialize_rule",
    "graph_to_rule",
    "iter_conditions",
    "load_rule_file",
    "rule_from_dict",
    "rule_to_dict",
    "rule_to_graph",
    "serialize_rule",
    "validate_rule",
]
