"""
Wire models for the evaluation-engine test boundary.

Request:  { compiledRule, testContext: {eventType, eventData, subjectId, attributes, timestamp} }
Response: { matched, conditionResults[], matchedNodeIds[], triggeredActions[], evaluationTimeMs, error? }

Every response field has a default so partial replies still parse; field
names stay camelCase to match the engine's JSON.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class TestContext(BaseModel):
    __test__ = False  # not a pytest class

    eventType: str = ""
    eventData: Dict[str, Any] = Field(default_factory=dict)
    subjectId: str = ""
    attributes: Dict[str, Any] = Field(default_factory=dict)
    timestamp: str = Field(default_factory=_now_iso)


class TestRequest(BaseModel):
    __test__ = False

    compiledRule: Dict[str, Any]
    testContext: TestContext


class ConditionResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nodeId: Optional[str] = None
    field: Optional[str] = None
    operator: Optional[str] = None
    expectedValue: Any = None
    actualValue: Any = None
    matched: bool = False


class TestResult(BaseModel):
    __test__ = False
    model_config = ConfigDict(extra="ignore")

    matched: bool = False
    conditionResults: List[ConditionResult] = Field(default_factory=list)
    # None when the engine omitted the field, as opposed to an empty list
    matchedNodeIds: Optional[List[str]] = None
    triggeredActions: List[Dict[str, Any]] = Field(default_factory=list)
    evaluationTimeMs: float = 0.0
    error: Optional[str] = None

    @classmethod
    def from_response(cls, data: Any) -> 'TestResult':
        """Parse an engine reply; a reply that cannot be read becomes an error result."""
        if not isinstance(data, dict):
            return cls(error=f"Evaluation engine returned {type(data).__name__}, expected an object")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            return cls(error=f"Evaluation engine returned an unreadable result: {exc.error_count()} problem(s)")
