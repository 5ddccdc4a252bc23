"""
TestRunner — dispatches rule tests and keeps only the newest answer.

Overlapping tests are allowed. Each dispatch takes a fresh token; when a reply
arrives whose token is no longer the latest (or the runner was closed in the
meantime) it is discarded, so a slow stale reply can never overwrite the
highlight of a newer test.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from rulegraph.compiler.extractor import compile_graph
from rulegraph.compiler.schema import rule_to_dict
from rulegraph.core.GraphPrimitives import Graph

from .engine import EvaluationEngine, EvaluationError
from .highlight import Highlight, project_highlight
from .models import TestContext, TestRequest, TestResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TestOutcome:
    __test__ = False

    token: int
    result: TestResult
    highlight: Highlight


class TestRunner:
    __test__ = False

    def __init__(self, engine: EvaluationEngine):
        self.engine = engine
        self._latest_token = 0
        self._closed = False
        self._listeners: List[Callable[[TestOutcome], None]] = []
        self.last_outcome: Optional[TestOutcome] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def highlight(self) -> Highlight:
        return self.last_outcome.highlight if self.last_outcome else Highlight.empty()

    def on_result(self, callback: Callable[[TestOutcome], None]) -> None:
        """Register a callback that receives every accepted (non-stale) outcome."""
        self._listeners.append(callback)

    def close(self) -> None:
        """Stop accepting replies; anything still in flight will be dropped."""
        self._closed = True

    async def run(self,
                  graph: Graph,
                  context: Union[TestContext, Dict[str, Any]]) -> Optional[TestOutcome]:
        """
        Compile ``graph`` and send it with ``context`` to the engine.

        Returns the outcome, or None when the reply was superseded by a newer
        test or arrived after close().

        Raises:
            CompilationError: if the graph does not compile; nothing is sent.
        """
        if self._closed:
            raise RuntimeError("TestRunner is closed")

        if not isinstance(context, TestContext):
            context = TestContext.model_validate(context)

        compiled = compile_graph(graph)
        request = TestRequest(compiledRule=rule_to_dict(compiled.rule), testContext=context)

        self._latest_token += 1
        token = self._latest_token
        logger.info("Test #%d dispatched (event type '%s')", token, context.eventType)

        try:
            raw = await self.engine.evaluate(request.model_dump())
            result = TestResult.from_response(raw)
        except EvaluationError as exc:
            logger.warning("Test #%d failed: %s", token, exc)
            result = TestResult(error=str(exc))

        if self._closed:
            logger.info("Test #%d reply discarded: editor closed", token)
            return None
        if token != self._latest_token:
            logger.warning("Test #%d reply discarded: superseded by #%d", token, self._latest_token)
            return None

        outcome = TestOutcome(token, result, project_highlight(graph, result, compiled.source_map))
        self.last_outcome = outcome
        for callback in self._listeners:
            try:
                callback(outcome)
            except Exception:
                logger.exception("Test result listener failed")
        return outcome
