"""
Canonical JSON round trip for compiled rules.

serialize_rule() always emits the same bytes for equal rules (fixed key order,
two-space indent, no trailing whitespace), so deserializing and
re-serializing an unmodified rule reproduces its text exactly.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Union

from .errors import SchemaError
from .ir import RuleDefinition
from .schema import rule_from_dict, rule_to_dict


def _reject_constant(token: str):
    raise ValueError(f"{token} is not a valid JSON number")


def serialize_rule(rule: RuleDefinition) -> str:
    return json.dumps(rule_to_dict(rule), indent=2, ensure_ascii=False, allow_nan=False)


def deserialize_rule(text: Union[str, bytes]) -> RuleDefinition:
    """
    Parse rule JSON text.

    Raises:
        SchemaError: If the text is not valid JSON or the rule is malformed.
    """
    try:
        data = json.loads(text, parse_constant=_reject_constant)
    except (TypeError, ValueError) as exc:
        raise SchemaError(f"rule JSON could not be parsed: {exc}") from exc
    return rule_from_dict(data)


def load_rule_file(path: Union[str, Path]) -> RuleDefinition:
    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        return deserialize_rule(fh.read())
