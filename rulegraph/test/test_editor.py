import asyncio
import json

import pytest

from rulegraph.compiler import Condition, RuleMetadata, RuleValidationError, SchemaError, rule_to_dict
from rulegraph.config import Settings
from rulegraph.core.GraphPrimitives import LogicPayload, Position
from rulegraph.core.Types import Combinator, Operator
from rulegraph.editor import KeyEvent, RuleEditor, Shortcut


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms / 1000.0


class ReplyEngine:
    """Answers every request at once with a fixed reply."""

    def __init__(self, reply):
        self.reply = reply
        self.requests = []

    async def evaluate(self, request):
        self.requests.append(request)
        return self.reply


RULE_TEXT = json.dumps({
    "root": {"targetId": "badge-7", "quantity": 1},
    "expression": {
        "combinator": "OR",
        "children": [
            {"field": "user.level", "operator": "gte", "value": 10},
            {"field": "user.points", "operator": "gt", "value": 1000},
        ],
    },
}, indent=2)


class TestRuleEditor:

    def setup_method(self):
        self.clock = FakeClock()
        self.editor = RuleEditor(clock=self.clock)

    def teardown_method(self):
        self.editor.close()

    def build_level_rule(self):
        c1 = self.editor.add_condition("user.level", Operator.GTE, 5)
        a1 = self.editor.add_action("badge-1")
        assert self.editor.connect(c1.id, a1.id).valid
        return c1, a1

    # ── Creation and history ─────────────────────────────────────────────

    def test_mount_state_is_first_history_entry(self):
        assert len(self.editor.history) == 1
        assert not self.editor.can_undo

    def test_node_ids_per_kind(self):
        assert self.editor.add_condition().id == "condition-1"
        assert self.editor.add_condition().id == "condition-2"
        assert self.editor.add_logic().id == "logic-1"
        assert self.editor.add_action().id == "action-1"

    def test_ids_skip_existing(self):
        first = self.editor.add_condition()
        self.editor.add_condition()
        self.editor.delete_nodes([first.id])
        assert self.editor.add_condition().id == "condition-3"

    def test_each_edit_is_one_undo_step_regardless_of_timing(self):
        # no clock movement at all: discrete edits are never debounced away
        self.build_level_rule()
        assert len(self.editor.history) == 4
        self.editor.undo()
        assert self.editor.graph.edges == ()
        self.editor.undo()
        self.editor.undo()
        assert self.editor.graph.nodes == ()
        assert not self.editor.undo()
        assert self.editor.redo()
        assert [n.id for n in self.editor.graph.nodes] == ["condition-1"]

    def test_undo_then_edit_discards_redo(self):
        self.editor.add_condition()
        self.editor.add_condition()
        self.editor.undo()
        self.editor.add_logic()
        assert not self.editor.can_redo

    def test_record_change_is_debounced(self):
        c1 = self.editor.add_condition()
        self.clock.advance(200)
        graph = self.editor.graph
        assert self.editor.record_change(graph.move_node(c1.id, 1, 1))
        assert not self.editor.record_change(graph.move_node(c1.id, 2, 2))
        assert self.editor.graph.get_node(c1.id).position == Position(2, 2)

    # ── Connections ──────────────────────────────────────────────────────

    def test_logic_slots_fill_in_order(self):
        logic = self.editor.add_logic()
        conditions = [self.editor.add_condition(f"user.f{i}", Operator.EQ, i) for i in range(4)]
        for c in conditions[:3]:
            assert self.editor.connect(c.id, logic.id).valid
        slots = [e.target_slot for e in self.editor.graph.incoming_edges(logic.id)]
        assert slots == ["input-1", "input-2", "input-3"]

        result = self.editor.connect(conditions[3].id, logic.id)
        assert not result.valid
        assert "occupied" in result.reason

    def test_rejected_connection_changes_nothing(self):
        c1, a1 = self.build_level_rule()
        before, length = self.editor.graph, len(self.editor.history)
        result = self.editor.connect(a1.id, c1.id)
        assert not result.valid
        assert self.editor.graph is before
        assert len(self.editor.history) == length

    def test_disconnect(self):
        self.build_level_rule()
        edge_id = self.editor.graph.edges[0].id
        self.editor.disconnect(edge_id)
        assert self.editor.graph.edges == ()

    # ── Node edits ───────────────────────────────────────────────────────

    def test_drag_is_one_history_entry(self):
        c1 = self.editor.add_condition()
        length = len(self.editor.history)
        start = c1.position
        self.editor.begin_drag(c1.id)
        for step in range(10):
            self.editor.drag_to(step * 5, step * 3)
        self.editor.end_drag()
        assert len(self.editor.history) == length + 1
        self.editor.undo()
        assert self.editor.graph.get_node(c1.id).position == start

    def test_multi_delete_is_one_entry_and_cascades(self):
        c1, a1 = self.build_level_rule()
        length = len(self.editor.history)
        assert self.editor.delete_nodes([c1.id, "ghost"]) == 1
        assert self.editor.graph.edges == ()
        assert len(self.editor.history) == length + 1

    def test_shrinking_logic_drops_orphaned_edges(self):
        logic = self.editor.add_logic()
        for i in range(3):
            c = self.editor.add_condition(f"user.f{i}", Operator.EQ, i)
            self.editor.connect(c.id, logic.id)
        self.editor.update_payload(logic.id, LogicPayload(Combinator.OR, 2))
        slots = sorted(e.target_slot for e in self.editor.graph.incoming_edges(logic.id))
        assert slots == ["input-1", "input-2"]

    def test_payload_kind_mismatch(self):
        c1 = self.editor.add_condition()
        with pytest.raises(ValueError):
            self.editor.update_payload(c1.id, LogicPayload())

    # ── Load / compile / save ────────────────────────────────────────────

    def test_compile_and_serialize(self):
        self.build_level_rule()
        rule = self.editor.compile()
        assert rule.expression == Condition("user.level", Operator.GTE, 5)
        assert json.loads(self.editor.serialize())["root"]["targetId"] == "badge-1"

    def test_empty_check_condition_compiles_without_value(self):
        c1 = self.editor.add_condition("user.tags", "is_empty")
        a1 = self.editor.add_action("badge-1")
        assert self.editor.connect(c1.id, a1.id).valid
        assert self.editor.compile().expression == Condition("user.tags", Operator.IS_EMPTY, None)
        assert json.loads(self.editor.serialize())["expression"]["value"] is None

    def test_second_condition_through_logic_node(self):
        c1, a1 = self.build_level_rule()
        assert rule_to_dict(self.editor.compile()) == {
            "root": {"targetId": "badge-1", "quantity": 1},
            "expression": {"field": "user.level", "operator": "gte", "value": 5},
        }

        c2 = self.editor.add_condition("order.count", Operator.GTE, 10)
        logic = self.editor.add_logic(Combinator.AND)
        self.editor.disconnect(self.editor.graph.edges[0].id)
        assert self.editor.connect(c1.id, logic.id).valid
        assert self.editor.connect(c2.id, logic.id).valid
        assert self.editor.connect(logic.id, a1.id).valid

        assert rule_to_dict(self.editor.compile())["expression"] == {
            "combinator": "AND",
            "children": [
                {"field": "user.level", "operator": "gte", "value": 5},
                {"field": "order.count", "operator": "gte", "value": 10},
            ],
        }

    def test_load_rule_resets_history(self):
        self.editor.add_condition()
        graph = self.editor.load_rule(RULE_TEXT, display_name="Veteran")
        assert self.editor.graph is graph
        assert not self.editor.can_undo
        assert self.editor.compile().root.target_id == "badge-7"
        assert self.editor.graph.get_node("action-1").payload.display_name == "Veteran"

    def test_load_round_trip_is_byte_identical(self):
        self.editor.load_rule(RULE_TEXT)
        assert self.editor.serialize() == RULE_TEXT

    def test_bad_rule_text_leaves_graph_untouched(self):
        c1, _ = self.build_level_rule()
        before = self.editor.graph
        with pytest.raises(SchemaError):
            self.editor.load_rule('{"root": {}}')
        assert self.editor.graph is before
        assert self.editor.can_undo

    def test_prepare_save_lists_every_defect(self):
        self.editor.add_logic()
        with pytest.raises(RuleValidationError) as info:
            self.editor.prepare_save()
        errors = info.value.errors
        assert "Rule must contain at least one action node" in errors
        assert "Rule name is required" in errors

    def test_prepare_save_payload(self):
        self.build_level_rule()
        self.editor.metadata = RuleMetadata("Level 5", "LEVEL_5", "user.level_up")
        saved = []
        self.editor.save_handler = saved.append
        payload = self.editor.save()
        assert saved == [payload]
        assert payload["ruleCode"] == "LEVEL_5"
        assert payload["ruleJson"]["expression"]["operator"] == "gte"
        assert {n["id"] for n in payload["layout"]["nodes"]} == {"condition-1", "action-1"}

    def test_saved_layout_is_restored_on_load(self):
        c1, a1 = self.build_level_rule()
        self.editor.move_node(c1.id, 12, 34)
        self.editor.move_node(a1.id, 400, 34)
        self.editor.metadata = RuleMetadata("Level 5", "LEVEL_5", "user.level_up")
        saved = self.editor.save()

        editor = RuleEditor(clock=self.clock)
        graph = editor.load_rule(json.dumps(saved["ruleJson"]), layout=saved["layout"])
        assert graph.get_node("condition-1").position == Position(12, 34)
        assert graph.get_node("action-1").position == Position(400, 34)
        editor.close()

    def test_metadata_can_be_optional(self):

        editor = RuleEditor(settings=Settings(require_metadata=False), clock=self.clock)
        c1 = editor.add_condition("user.level", Operator.GTE, 5)
        a1 = editor.add_action("badge-1")
        editor.connect(c1.id, a1.id)
        assert editor.validate().valid

    # ── Selection, clipboard, keyboard ───────────────────────────────────

    def test_copy_paste(self):
        c1, a1 = self.build_level_rule()
        self.editor.select([c1.id, a1.id])
        assert self.editor.copy_selection() == 2
        pasted = self.editor.paste()
        assert [n.id for n in pasted] == ["condition-2", "action-2"]
        assert pasted[0].position == Position(c1.position.x + 40, c1.position.y + 40)
        assert self.editor.graph.get_edge("e-condition-2-action-2") is not None
        assert self.editor.selection == {"condition-2", "action-2"}

    def test_hotkeys_drive_editor(self):
        c1 = self.editor.add_condition()
        self.editor.select([c1.id])
        assert self.editor.handle_key(KeyEvent("Delete", in_text_input=True)) is None
        assert self.editor.graph.has_node(c1.id)

        assert self.editor.handle_key(KeyEvent("Delete")) == Shortcut.DELETE
        assert not self.editor.graph.has_node(c1.id)

        assert self.editor.handle_key(KeyEvent("z", meta=True), mac=True) == Shortcut.UNDO
        assert self.editor.graph.has_node(c1.id)

        assert self.editor.handle_key(KeyEvent("Z", ctrl=True, shift=True)) == Shortcut.REDO
        assert not self.editor.graph.has_node(c1.id)

    def test_save_hotkey_with_invalid_rule_does_not_raise(self):
        self.editor.add_logic()
        assert self.editor.handle_key(KeyEvent("s", ctrl=True)) == Shortcut.SAVE

    def test_escape_clears_selection_even_in_text_input(self):
        self.editor.add_condition()
        self.editor.select_all()
        self.editor.handle_key(KeyEvent("Escape", in_text_input=True))
        assert self.editor.selection == set()

    def test_change_listener_sees_settled_history(self):
        seen = []
        self.editor.on_change(lambda graph: seen.append((len(graph.nodes), self.editor.can_undo)))
        self.editor.add_condition()
        self.editor.undo()
        assert seen == [(1, True), (0, False)]

    # ── Testing ──────────────────────────────────────────────────────────

    def test_run_test_highlights(self):
        engine = ReplyEngine({"matched": True, "matchedNodeIds": ["condition-1", "action-1"]})
        editor = RuleEditor(engine=engine, clock=self.clock)
        c1 = editor.add_condition("user.level", Operator.GTE, 5)
        a1 = editor.add_action("badge-1")
        editor.connect(c1.id, a1.id)
        history_length = len(editor.history)

        outcome = asyncio.run(editor.run_test({"eventType": "user.level_up"}))
        assert outcome.result.matched
        assert editor.highlight.node_ids == {"condition-1", "action-1"}
        assert editor.highlight.edge_ids == {"e-condition-1-action-1"}
        assert len(editor.history) == history_length

    def test_run_test_requires_engine(self):
        self.build_level_rule()
        with pytest.raises(RuntimeError):
            asyncio.run(self.editor.run_test({"eventType": "x"}))

    def test_closed_editor_refuses_edits(self):
        self.editor.close()
        assert self.editor.closed
        with pytest.raises(RuntimeError):
            self.editor.add_condition()
        assert self.editor.handle_key(KeyEvent("Delete")) is None
