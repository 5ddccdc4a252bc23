from .engine import EvaluationEngine, EvaluationError, HttpEvaluationEngine
from .highlight import Highlight, project_highlight
from .models import ConditionResult, TestContext, TestRequest, TestResult
from .runner import TestOutcome, TestRunner
from .scenarios import PRESET_SCENARIOS, TestScenario, find_scenario

__all__ = [
    "PRESET_SCENARIOS",
    "ConditionResult",
    "EvaluationEngine",
    "EvaluationError",
    "Highlight",
    "HttpEvaluationEngine",
    "TestContext",
    "TestOutcome",
    "TestRequest",
    "TestResult",
    "TestRunner",
    "TestScenario",
    "find_scenario",
    "project_highlight",
]
