import json

from fastapi.testclient import TestClient

from rulegraph.server.main import app
from rulegraph.server.state import editor_state


class ReplyEngine:
    def __init__(self, reply):
        self.reply = reply
        self.requests = []

    async def evaluate(self, request):
        self.requests.append(request)
        return self.reply


class TestGraphRoutes:

    def setup_method(self):
        editor_state.reset()
        self.client = TestClient(app)
        self.client.__enter__()

    def teardown_method(self):
        self.client.__exit__(None, None, None)

    def add_node(self, kind, **data):
        response = self.client.post("/api/nodes", json={"kind": kind, "data": data})
        assert response.status_code == 201
        return response.json()

    def build_level_rule(self):
        c1 = self.add_node("condition", field="user.level", operator="gte", value=5)
        a1 = self.add_node("action", targetId="badge-1")
        response = self.client.post("/api/edges", json={"sourceNodeId": c1["id"], "targetNodeId": a1["id"]})
        assert response.status_code == 201
        return c1, a1

    def test_health(self):
        assert self.client.get("/health").json()["status"] == "ok"

    def test_create_and_list_nodes(self):
        node = self.add_node("logic", combinator="OR")
        assert node["id"] == "logic-1"
        assert node["data"] == {"combinator": "OR", "slotCount": 3, "slots": ["input-1", "input-2", "input-3"]}
        graph = self.client.get("/api/graph").json()
        assert [n["id"] for n in graph["nodes"]] == ["logic-1"]
        assert graph["canUndo"] is True

    def test_create_node_rejects_bad_input(self):
        assert self.client.post("/api/nodes", json={"kind": "trigger"}).status_code == 400
        response = self.client.post("/api/nodes", json={"kind": "condition", "data": {"operator": "approx"}})
        assert response.status_code == 400

    def test_rejected_edge_reports_reason(self):
        c1, a1 = self.build_level_rule()
        response = self.client.post("/api/edges", json={"sourceNodeId": a1["id"], "targetNodeId": c1["id"]})
        assert response.status_code == 400
        assert "terminal" in response.json()["detail"]

    def test_edge_to_logic_picks_slot(self):
        c1 = self.add_node("condition", field="user.level", operator="gte", value=5)
        l1 = self.add_node("logic")
        response = self.client.post("/api/edges", json={"sourceNodeId": c1["id"], "targetNodeId": l1["id"]})
        assert response.json()["targetSlot"] == "input-1"

    def test_delete_node_and_edge(self):
        c1, a1 = self.build_level_rule()
        edge_id = self.client.get("/api/graph").json()["edges"][0]["id"]
        assert self.client.delete(f"/api/edges/{edge_id}").status_code == 204
        assert self.client.delete(f"/api/edges/{edge_id}").status_code == 404
        assert self.client.delete(f"/api/nodes/{c1['id']}").status_code == 204
        assert self.client.delete("/api/nodes/ghost").status_code == 404

    def test_move_and_update_node(self):
        c1 = self.add_node("condition")
        response = self.client.put(f"/api/nodes/{c1['id']}/position", json={"x": 42, "y": 7})
        assert response.status_code == 204
        response = self.client.put(f"/api/nodes/{c1['id']}/data",
                                   json={"data": {"field": "order.amount", "operator": "between", "value": [1, 9]}})
        assert response.status_code == 200
        node = response.json()
        assert node["position"] == {"x": 42, "y": 7}
        assert node["data"] == {"field": "order.amount", "operator": "between", "value": [1, 9]}

    def test_empty_check_condition_needs_no_value(self):
        c1 = self.add_node("condition", field="user.tags", operator="is_not_empty")
        assert c1["data"]["value"] is None
        a1 = self.add_node("action", targetId="badge-1")
        self.client.post("/api/edges", json={"sourceNodeId": c1["id"], "targetNodeId": a1["id"]})
        assert self.client.get("/api/compile").status_code == 200

        response = self.client.put(f"/api/nodes/{c1['id']}/data",
                                   json={"data": {"field": "user.tags", "operator": "is_empty"}})
        assert response.json()["data"]["value"] is None
        assert self.client.get("/api/compile").json()["rule"]["expression"]["operator"] == "is_empty"

    def test_undo_redo(self):
        self.add_node("condition")
        graph = self.client.post("/api/undo").json()
        assert graph["nodes"] == []
        assert graph["canRedo"] is True
        graph = self.client.post("/api/redo").json()
        assert len(graph["nodes"]) == 1

    def test_compile(self):
        assert self.client.get("/api/compile").status_code == 422
        self.build_level_rule()
        body = self.client.get("/api/compile").json()
        assert body["rule"] == {
            "root": {"targetId": "badge-1", "quantity": 1},
            "expression": {"field": "user.level", "operator": "gte", "value": 5},
        }
        assert body["sourceMap"] == {"": "condition-1"}

    def test_validate(self):
        self.add_node("logic")
        body = self.client.post("/api/validate", json={"name": "x"}).json()
        assert body["valid"] is False
        assert "Logic node 'logic-1' has no connected inputs" in body["errors"]
        assert "Rule name is required" not in body["errors"]

    def test_serialize_and_load(self):
        self.build_level_rule()
        text = self.client.get("/api/serialize").json()["ruleJson"]
        editor_state.reset()
        graph = self.client.post("/api/load", json={"ruleJson": text, "displayName": "Lvl"}).json()
        assert {n["kind"] for n in graph["nodes"]} == {"condition", "action"}
        assert graph["canUndo"] is False
        assert self.client.get("/api/serialize").json()["ruleJson"] == text

    def test_save_then_load_keeps_positions(self):
        c1, _ = self.build_level_rule()
        self.client.put(f"/api/nodes/{c1['id']}/position", json={"x": 9, "y": 11})
        saved = self.client.post("/api/save", json={
            "name": "Level 5", "ruleCode": "LEVEL_5", "eventType": "user.level_up",
        }).json()
        editor_state.reset()
        graph = self.client.post("/api/load", json={
            "ruleJson": json.dumps(saved["ruleJson"]), "layout": saved["layout"],
        }).json()
        positions = {n["id"]: n["position"] for n in graph["nodes"]}
        assert positions["condition-1"] == {"x": 9, "y": 11}

        response = self.client.post("/api/load", json={"ruleJson": json.dumps(saved["ruleJson"]),
                                                       "layout": {"nodes": [{"id": "x"}]}})
        assert response.status_code == 400

    def test_load_rejects_malformed_rule(self):
        response = self.client.post("/api/load", json={"ruleJson": json.dumps({"root": {"targetId": "b"}})})
        assert response.status_code == 400

    def test_save(self):
        self.build_level_rule()
        response = self.client.post("/api/save", json={})
        assert response.status_code == 422
        assert "Rule code is required" in response.json()["detail"]

        response = self.client.post("/api/save", json={
            "name": "Level 5", "ruleCode": "LEVEL_5", "eventType": "user.level_up",
        })
        assert response.status_code == 200
        assert response.json()["ruleJson"]["root"]["targetId"] == "badge-1"

    def test_test_route_without_engine(self):
        self.build_level_rule()
        assert self.client.post("/api/test", json={"eventType": "x"}).status_code == 503

    def test_test_route(self):
        editor_state.reset(ReplyEngine({"matched": True, "matchedNodeIds": ["condition-1"]}))
        self.build_level_rule()
        body = self.client.post("/api/test", json={"eventType": "user.level_up"}).json()
        assert body["discarded"] is False
        assert body["result"]["matched"] is True
        assert body["highlight"]["nodeIds"] == ["condition-1"]
        assert self.client.get("/api/highlight").json()["nodeIds"] == ["condition-1"]

    def test_test_route_runs_preset_scenario(self):
        engine = ReplyEngine({"matched": False})
        editor_state.reset(engine)
        self.build_level_rule()
        body = self.client.post("/api/test", json={"scenario": "level_up"}).json()
        assert body["discarded"] is False
        context = engine.requests[0]["testContext"]
        assert context["eventType"] == "level_up"
        assert context["attributes"]["user"]["level"] == 5
        assert "scenario" not in context

        response = self.client.post("/api/test", json={"scenario": "nope"})
        assert response.status_code == 404
        assert len(engine.requests) == 1

    def test_test_scenarios(self):
        scenarios = self.client.get("/api/test-scenarios").json()
        keys = [s["key"] for s in scenarios]
        assert keys[0] == "first_checkin"
        assert "birthday" in keys
        assert scenarios[0]["context"]["eventType"] == "check_in"

    def test_catalogues(self):
        fields = self.client.get("/api/fields").json()
        assert {"field": "user.level", "label": "User level", "type": "number", "category": "user"} in fields
        operators = {op["value"]: op for op in self.client.get("/api/operators").json()}
        assert operators["between"]["arity"] == "range"
        assert self.client.get("/api/node-kinds").json() == ["condition", "logic", "action"]
