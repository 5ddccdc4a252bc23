import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from rulegraph.bridge import (
    PRESET_SCENARIOS,
    EvaluationError,
    HttpEvaluationEngine,
    TestContext,
    TestResult,
    TestRunner,
    find_scenario,
    project_highlight,
)
from rulegraph.compiler import CompilationError, compile_graph
from rulegraph.core.GraphPrimitives import (
    ActionPayload,
    ConditionPayload,
    Edge,
    Graph,
    LogicPayload,
    Node,
    edge_id_for,
)
from rulegraph.core.Types import Combinator, NodeKind, Operator


def edge(source, target, slot=None):
    return Edge(edge_id_for(source, target, slot), source, target, slot)


def rule_graph():
    return Graph(
        (
            Node("c1", NodeKind.CONDITION, ConditionPayload("user.level", Operator.GTE, 5)),
            Node("c2", NodeKind.CONDITION, ConditionPayload("order.amount", Operator.GT, 100)),
            Node("l1", NodeKind.LOGIC, LogicPayload(Combinator.OR)),
            Node("a1", NodeKind.ACTION, ActionPayload("badge-1")),
        ),
        (edge("c1", "l1", "input-1"), edge("c2", "l1", "input-2"), edge("l1", "a1")),
    )


class GatedEngine:
    """Engine whose replies are released by the test, in any order."""

    def __init__(self, replies):
        self.replies = replies
        self.requests = []
        self.gates = []

    async def evaluate(self, request):
        index = len(self.requests)
        self.requests.append(request)
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        reply = self.replies[index]
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def wait_for(self, count):
        while len(self.gates) < count:
            await asyncio.sleep(0)


class TestModels:

    def test_partial_reply_parses(self):
        result = TestResult.from_response({"matched": True})
        assert result.matched
        assert result.conditionResults == []
        assert result.matchedNodeIds is None
        assert result.error is None

    def test_unreadable_reply_becomes_error(self):
        assert TestResult.from_response(["nope"]).error
        assert TestResult.from_response({"conditionResults": "nope"}).error

    def test_context_defaults(self):
        context = TestContext(eventType="order.paid")
        assert context.eventData == {}
        assert context.timestamp


class TestScenarios:

    def test_catalogue_keys_are_unique(self):
        keys = [scenario.key for scenario in PRESET_SCENARIOS]
        assert len(keys) == len(set(keys))
        assert "large_purchase" in keys

    def test_find_scenario(self):
        scenario = find_scenario("consecutive_checkin")
        assert scenario.event_type == "check_in"
        assert find_scenario("nope") is None

    def test_each_context_is_fresh(self):
        scenario = find_scenario("large_purchase")
        first = scenario.context()
        first.attributes["order"]["amount"] = 1
        second = scenario.context()
        assert isinstance(second, TestContext)
        assert second.eventType == "purchase"
        assert second.subjectId == "test-user-003"
        assert second.attributes["order"]["amount"] == 10000

    def test_to_dict(self):
        data = find_scenario("birthday").to_dict()
        assert data["key"] == "birthday"
        assert data["context"]["eventData"]["isBirthday"] is True



class TestProjection:

    def setup_method(self):
        self.graph = rule_graph()

    def test_matched_node_ids_filtered_to_graph(self):
        result = TestResult(matched=True, matchedNodeIds=["c1", "l1", "a1", "gone"])
        highlight = project_highlight(self.graph, result)
        assert highlight.node_ids == {"c1", "l1", "a1"}
        assert highlight.edge_ids == {"e-c1-l1-input-1", "e-l1-a1"}
        assert highlight.matched

    def test_condition_results_by_node_id(self):
        result = TestResult.from_response({
            "matched": False,
            "conditionResults": [
                {"nodeId": "c2", "matched": True},
                {"nodeId": "c1", "matched": False},
            ],
        })
        highlight = project_highlight(self.graph, result)
        assert highlight.node_ids == {"c2"}
        assert highlight.edge_ids == set()

    def test_condition_results_by_source_map_path(self):
        compiled = compile_graph(self.graph)
        result = TestResult.from_response({
            "conditionResults": [{"nodeId": "1", "matched": True}],
        })
        highlight = project_highlight(self.graph, result, compiled.source_map)
        assert highlight.node_ids == {"c2"}

    def test_condition_results_by_field_and_operator(self):
        result = TestResult.from_response({
            "conditionResults": [{"field": "user.level", "operator": "gte", "matched": True}],
        })
        assert project_highlight(self.graph, result).node_ids == {"c1"}

    def test_overall_match_lights_everything(self):
        result = TestResult.from_response({"matched": True, "conditionResults": []})
        highlight = project_highlight(self.graph, result)
        assert highlight.node_ids == {"c1", "c2", "l1", "a1"}
        assert len(highlight.edge_ids) == 3

    def test_partial_data_never_raises(self):
        result = TestResult.from_response({"conditionResults": [{"matched": True}]})
        assert project_highlight(self.graph, result).node_ids == frozenset()


class TestRunnerBehaviour:

    def setup_method(self):
        self.graph = rule_graph()
        self.context = {"eventType": "user.level_up", "eventData": {"level": 6}}

    def test_request_carries_compiled_rule(self):
        async def scenario():
            engine = GatedEngine([{"matched": True, "matchedNodeIds": ["c1"]}])
            runner = TestRunner(engine)
            task = asyncio.create_task(runner.run(self.graph, self.context))
            await engine.wait_for(1)
            engine.gates[0].set()
            return engine, await task

        engine, outcome = asyncio.run(scenario())
        request = engine.requests[0]
        assert request["compiledRule"]["root"] == {"targetId": "badge-1", "quantity": 1}
        assert request["testContext"]["eventType"] == "user.level_up"
        assert outcome.token == 1
        assert outcome.highlight.node_ids == {"c1"}

    def test_last_response_wins(self):
        async def scenario():
            engine = GatedEngine([
                {"matched": False, "matchedNodeIds": ["c1"]},
                {"matched": True, "matchedNodeIds": ["c2"]},
            ])
            runner = TestRunner(engine)
            seen = []
            runner.on_result(seen.append)
            first = asyncio.create_task(runner.run(self.graph, self.context))
            await engine.wait_for(1)
            second = asyncio.create_task(runner.run(self.graph, {"eventType": "order.paid"}))
            await engine.wait_for(2)
            # the newer request answers first, the stale one afterwards
            engine.gates[1].set()
            newer = await second
            engine.gates[0].set()
            stale = await first
            return runner, seen, newer, stale

        runner, seen, newer, stale = asyncio.run(scenario())
        assert stale is None
        assert newer.token == 2
        assert runner.last_outcome is newer
        assert runner.highlight.node_ids == {"c2"}
        assert seen == [newer]
        assert newer.result.matched

    def test_reply_after_close_is_dropped(self):
        async def scenario():
            engine = GatedEngine([{"matched": True}])
            runner = TestRunner(engine)
            task = asyncio.create_task(runner.run(self.graph, self.context))
            await engine.wait_for(1)
            runner.close()
            engine.gates[0].set()
            return runner, await task

        runner, outcome = asyncio.run(scenario())
        assert outcome is None
        assert runner.last_outcome is None
        assert runner.closed

    def test_engine_failure_becomes_error_result(self):
        async def scenario():
            engine = GatedEngine([EvaluationError("engine down")])
            runner = TestRunner(engine)
            task = asyncio.create_task(runner.run(self.graph, self.context))
            await engine.wait_for(1)
            engine.gates[0].set()
            return await task

        outcome = asyncio.run(scenario())
        assert outcome.result.error == "engine down"
        assert not outcome.result.matched
        assert outcome.highlight.node_ids == frozenset()

    def test_uncompilable_graph_sends_nothing(self):
        engine = GatedEngine([])
        runner = TestRunner(engine)
        graph = self.graph.without_node("a1")
        with pytest.raises(CompilationError):
            asyncio.run(runner.run(graph, self.context))
        assert engine.requests == []

    def test_listener_errors_are_contained(self):
        async def scenario():
            engine = GatedEngine([{"matched": True}])
            runner = TestRunner(engine)

            def broken(outcome):
                raise RuntimeError("listener bug")

            runner.on_result(broken)
            task = asyncio.create_task(runner.run(self.graph, self.context))
            await engine.wait_for(1)
            engine.gates[0].set()
            return await task

        assert asyncio.run(scenario()).result.matched


class TestHttpEvaluationEngine:

    def run_against(self, handler, timeout=2.0):
        async def scenario():
            app = web.Application()
            app.router.add_post("/admin/rules/test", handler)
            server = test_utils.TestServer(app)
            await server.start_server()
            try:
                engine = HttpEvaluationEngine(str(server.make_url("/")), timeout=timeout)
                return await engine.evaluate({"compiledRule": {}, "testContext": {}})
            finally:
                await server.close()

        return asyncio.run(scenario())

    def test_posts_and_parses_json(self):
        received = []

        async def handler(request):
            received.append(await request.json())
            return web.json_response({"matched": True, "evaluationTimeMs": 3})

        reply = self.run_against(handler)
        assert reply == {"matched": True, "evaluationTimeMs": 3}
        assert received == [{"compiledRule": {}, "testContext": {}}]

    def test_http_error_raises(self):
        async def handler(request):
            return web.Response(status=500, text="kaput")

        with pytest.raises(EvaluationError, match="HTTP 500"):
            self.run_against(handler)

    def test_invalid_json_raises(self):
        async def handler(request):
            return web.Response(text="<html>", content_type="text/html")

        with pytest.raises(EvaluationError, match="invalid JSON"):
            self.run_against(handler)

    def test_timeout_raises(self):
        async def handler(request):
            await asyncio.sleep(1.0)
            return web.json_response({})

        with pytest.raises(EvaluationError, match="timed out"):
            self.run_against(handler, timeout=0.05)

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            HttpEvaluationEngine("")
