"""
Test suite for the node view and edit sessions.

    §1  Snapshots of field rows
    §2  Node lists built from documents
    §3  Resynchronization by path
    §4  Session transitions
    §5  Commits in field mode
    §6  Commits in whole-value mode
    §7  Failed commits leave everything as it was
    §8  Rebuild and reselection
"""

import json
import logging
import sys
import os
import pytest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from jsonsplice.nodes import (
    Field, FieldType, Node,
    build_snapshot, fields_from_value, build_nodes, nodes_from_document,
    paths_equal, resynchronize,
)
from jsonsplice.session import (
    EditSessionController, SessionState, EditStyle,
    CommitOutcome, ValidationError, SessionStateError,
    InMemoryDocumentStore, InMemoryGraphStore, SINGLE_VALUE_KEY,
)
from jsonsplice.core import JsonSyntaxError


class RecordingNotifier:
    def __init__(self):
        self.successes = []
        self.failures = []

    def success(self, message):
        self.successes.append(message)

    def failure(self, message):
        self.failures.append(message)


def _session(text):
    document = InMemoryDocumentStore(text)
    graph = InMemoryGraphStore()
    graph.attach(document)
    notifier = RecordingNotifier()
    controller = EditSessionController(document, graph, notifier)
    return document, graph, notifier, controller


def _open(controller, graph, path):
    node = resynchronize(path, graph.get_nodes())
    assert node is not None, f"no node at {path!r}"
    controller.select(node)
    controller.enter_edit()
    return node


class DeferredGraph:
    """Graph store that rebuilds only when told to and never signals itself."""

    def __init__(self, document):
        self.document = document
        self.nodes = nodes_from_document(document.get_text())
        self.selected = None

    def rebuild(self):
        self.nodes = nodes_from_document(self.document.get_text())
        self.selected = None
        return self.nodes

    def get_nodes(self):
        return self.nodes

    def set_selected_node(self, node):
        self.selected = node


# ═══════════════════════════════════════════════════════════════════
#  §1  SNAPSHOTS
# ═══════════════════════════════════════════════════════════════════

class TestSnapshot:

    def test_empty(self):
        assert build_snapshot([]) == {}
        assert build_snapshot(None) == {}

    def test_single_value(self):
        assert build_snapshot([Field(None, 42, FieldType.NUMBER)]) == 42
        assert build_snapshot([Field(None, None, FieldType.NULL)]) is None

    def test_mapping_omits_composites(self):
        rows = [
            Field("name", "Ada", FieldType.STRING),
            Field("tags", None, FieldType.ARRAY),
            Field("meta", None, FieldType.OBJECT),
            Field("age", 36, FieldType.NUMBER),
        ]
        assert build_snapshot(rows) == {"name": "Ada", "age": 36}

    def test_single_keyed_row_is_mapping(self):
        assert build_snapshot([Field("k", "v", FieldType.STRING)]) == {"k": "v"}

    def test_lone_composite_is_not_editable(self):
        assert build_snapshot([Field(None, None, FieldType.ARRAY)]) == {}

    def test_no_side_effects(self):
        rows = [Field("a", 1, FieldType.NUMBER)]
        first = build_snapshot(rows)
        first["a"] = 99
        assert build_snapshot(rows) == {"a": 1}

    @pytest.mark.parametrize("rows", [
        [],
        [Field(None, "x", FieldType.STRING)],
        [Field("a", 1, FieldType.NUMBER), Field("b", True, FieldType.BOOLEAN)],
        [Field("a", None, FieldType.NULL), Field(None, 3, FieldType.NUMBER)],
    ])
    def test_idempotent_through_rows(self, rows):
        once = build_snapshot(rows)
        assert build_snapshot(fields_from_value(once)) == once

    def test_field_types(self):
        assert FieldType.of(True) is FieldType.BOOLEAN
        assert FieldType.of(1) is FieldType.NUMBER
        assert FieldType.of([]) is FieldType.ARRAY
        assert FieldType.of({}).is_composite
        with pytest.raises(TypeError):
            FieldType.of(object())


# ═══════════════════════════════════════════════════════════════════
#  §2  NODE LISTS
# ═══════════════════════════════════════════════════════════════════

class TestBuildNodes:

    DOC = {"a": 1, "b": {"c": 2}, "l": [3, {"d": 4}]}

    def test_paths(self):
        paths = [n.path for n in build_nodes(self.DOC)]
        assert paths == [(), ("b",), ("l", 0), ("l", 1)]

    def test_rows(self):
        root = build_nodes(self.DOC)[0]
        assert root.text == (
            Field("a", 1, FieldType.NUMBER),
            Field("b", None, FieldType.OBJECT),
            Field("l", None, FieldType.ARRAY),
        )

    def test_array_items_are_single_values(self):
        item = build_nodes(self.DOC)[2]
        assert item.is_single_value
        assert build_snapshot(item.text) == 3

    def test_root_array(self):
        assert [n.path for n in build_nodes([1, 2, 3])] == [(0,), (1,), (2,)]

    def test_from_document_with_comments(self):
        nodes = nodes_from_document('{\n  // c\n  "a": {"b": 1}\n}')
        assert [n.path for n in nodes] == [(), ("a",)]

    def test_from_invalid_document(self):
        with pytest.raises(JsonSyntaxError):
            nodes_from_document("{")

    def test_node_coerces_sequences(self):
        node = Node(["a", 0], [Field(None, 1, FieldType.NUMBER)])
        assert node.path == ("a", 0)
        assert isinstance(node.text, tuple)
        assert "$[\"a\"][0]" in repr(node)


# ═══════════════════════════════════════════════════════════════════
#  §3  RESYNCHRONIZATION
# ═══════════════════════════════════════════════════════════════════

class TestResynchronize:

    def test_structural_equality(self):
        assert paths_equal(("a", 1), ["a", 1])
        assert not paths_equal(("1",), (1,))
        assert not paths_equal((True,), (1,))
        assert not paths_equal(("a",), ("a", 0))
        assert paths_equal((), [])

    def test_finds_rebuilt_node(self):
        before = build_nodes({"x": {"y": 1}})
        after = build_nodes({"x": {"y": 2}})
        match = resynchronize(before[1].path, after)
        assert match is after[1]
        assert match is not before[1]

    def test_miss(self):
        assert resynchronize(("gone",), build_nodes({"x": {"y": 1}})) is None

    def test_root(self):
        nodes = build_nodes({"a": 1})
        assert resynchronize((), nodes) is nodes[0]


# ═══════════════════════════════════════════════════════════════════
#  §4  SESSION TRANSITIONS
# ═══════════════════════════════════════════════════════════════════

class TestTransitions:

    def test_starts_viewing(self):
        _, graph, _, ctl = _session('{"a": 1}')
        assert ctl.state is SessionState.VIEWING
        assert ctl.node is None
        assert ctl.display_path == "$"

    def test_enter_edit_needs_node(self):
        _, _, _, ctl = _session('{"a": 1}')
        with pytest.raises(SessionStateError):
            ctl.enter_edit()

    def test_enter_edit_snapshots(self):
        _, graph, _, ctl = _session('{"a": 1, "s": "t", "n": null, "o": {}}')
        _open(ctl, graph, ())
        assert ctl.state is SessionState.EDITING
        assert ctl.style is EditStyle.FIELDS
        assert ctl.snapshot == {"a": 1, "s": "t", "n": None}
        assert ctl.working_value == {"a": "1", "s": "t", "n": "null"}

    def test_single_value_key(self):
        _, graph, _, ctl = _session("[1, 2, 3]")
        _open(ctl, graph, (1,))
        assert ctl.working_value == {SINGLE_VALUE_KEY: "2"}
        assert ctl.display_path == "$[1]"

    def test_whole_value_text_is_live_value(self):
        _, graph, _, ctl = _session('{"b": {"c": 2, "l": [1]}}')
        _open(ctl, graph, ("b",))
        assert json.loads(ctl.whole_value_text) == {"c": 2, "l": [1]}
        ctl.update_whole_value('{"c": 3}')
        assert ctl.style is EditStyle.WHOLE_VALUE
        assert ctl.working_value == '{"c": 3}'

    def test_update_requires_editing(self):
        _, graph, _, ctl = _session('{"a": 1}')
        ctl.select(graph.get_nodes()[0])
        with pytest.raises(SessionStateError):
            ctl.update_field("a", "2")
        with pytest.raises(SessionStateError):
            ctl.commit()
        with pytest.raises(SessionStateError):
            ctl.cancel()

    def test_unknown_field(self):
        _, graph, _, ctl = _session('{"a": 1}')
        _open(ctl, graph, ())
        with pytest.raises(KeyError):
            ctl.update_field("zzz", "1")

    def test_cancel_discards(self):
        document, graph, _, ctl = _session('{"a": 1}')
        _open(ctl, graph, ())
        ctl.update_field("a", "5")
        ctl.cancel()
        assert ctl.state is SessionState.VIEWING
        assert document.get_text() == '{"a": 1}'
        assert not document.dirty
        ctl.enter_edit()
        assert ctl.working_value == {"a": "1"}

    def test_switching_node_discards_session(self):
        _, graph, _, ctl = _session('{"a": 1, "b": {"c": 2}}')
        _open(ctl, graph, ())
        ctl.update_field("a", "5")
        other = resynchronize(("b",), graph.get_nodes())
        ctl.select(other)
        assert ctl.state is SessionState.VIEWING
        assert ctl.snapshot == {"c": 2}
        ctl.enter_edit()
        assert ctl.working_value == {"c": "2"}


# ═══════════════════════════════════════════════════════════════════
#  §5  FIELD MODE
# ═══════════════════════════════════════════════════════════════════

class TestFieldCommit:

    def test_array_item(self):
        document, graph, notifier, ctl = _session("[1,2,3]")
        _open(ctl, graph, (1,))
        ctl.update_field(SINGLE_VALUE_KEY, "5")
        result = ctl.commit()
        assert result.ok
        assert document.get_text() == "[1,5,3]"
        assert document.dirty
        assert notifier.successes and not notifier.failures

    def test_root_field_edit_keeps_composites(self):
        document, graph, _, ctl = _session('{"x":1,"y":[9,9]}')
        _open(ctl, graph, ())
        assert "y" not in ctl.working_value
        ctl.update_field("x", "2")
        assert ctl.commit().ok
        assert json.loads(document.get_text()) == {"x": 2, "y": [9, 9]}

    def test_nested_field_edit_is_local(self):
        text = '{\n  "n": {\n    "x": 1,\n    "y": [9,9]\n  },\n  "z": true\n}'
        document, graph, _, ctl = _session(text)
        _open(ctl, graph, ("n",))
        ctl.update_field("x", "2")
        assert ctl.commit().ok
        assert document.get_text() == text.replace('"x": 1', '"x": 2')

    def test_lenient_string(self):
        document, graph, _, ctl = _session('{"o": {"s": "a", "n": 1}}')
        _open(ctl, graph, ("o",))
        ctl.update_field("s", "hello world")
        ctl.update_field("n", "null")
        assert ctl.commit().ok
        assert document.get_text() == '{"o": {"s": "hello world", "n": null}}'

    def test_untouched_fields_keep_type(self):
        document, graph, _, ctl = _session('{"o": {"code": "123", "n": 1}}')
        _open(ctl, graph, ("o",))
        ctl.update_field("n", "2")
        assert ctl.commit().ok
        assert json.loads(document.get_text()) == {"o": {"code": "123", "n": 2}}

    def test_field_set_back_is_not_an_edit(self):
        document, graph, _, ctl = _session('{"o": {"code": "123"}}')
        _open(ctl, graph, ("o",))
        ctl.update_field("code", "124")
        ctl.update_field("code", "123")
        assert ctl.commit().ok
        assert document.get_text() == '{"o": {"code": "123"}}'

    def test_out_of_range_number_beside_edit(self):
        """1e400 is valid JSON; it reads back as inf and must survive a sibling edit."""
        text = '{"o": {"big": 1e400, "x": 1}}'
        document, graph, notifier, ctl = _session(text)
        _open(ctl, graph, ("o",))
        assert ctl.working_value == {"big": "Infinity", "x": "1"}
        assert ctl.whole_value_text == '{"big": 1e400, "x": 1}'
        ctl.update_field("x", "2")
        assert ctl.commit().ok
        assert document.get_text() == '{"o": {"big": 1e400, "x": 2}}'
        assert not notifier.failures

    def test_out_of_range_number_at_root(self):
        # the root is rewritten canonically, and inf has no canonical text
        document, graph, notifier, ctl = _session('{"big": -1e400, "x": 1}')
        _open(ctl, graph, ())
        assert ctl.state is SessionState.EDITING
        assert ctl.whole_value_text == '{"big": -1e400, "x": 1}'
        ctl.update_field("x", "2")
        assert ctl.commit().outcome is CommitOutcome.INVALID
        assert document.get_text() == '{"big": -1e400, "x": 1}'
        assert notifier.failures


# ═══════════════════════════════════════════════════════════════════
#  §6  WHOLE-VALUE MODE
# ═══════════════════════════════════════════════════════════════════

class TestWholeValueCommit:

    def test_object_replaced_in_place(self):
        document, graph, _, ctl = _session('{"a":1,"b":{"c":2}}')
        _open(ctl, graph, ("b",))
        ctl.update_whole_value('{"c":3,"d":4}')
        result = ctl.commit()
        assert result.ok
        assert result.text == '{"a":1,"b":{"c":3,"d":4}}'
        assert document.get_text() == result.text

    def test_root_is_canonical(self):
        document, graph, _, ctl = _session('{"a":1}')
        _open(ctl, graph, ())
        ctl.update_whole_value('{"a": 2, "b": [true]}')
        assert ctl.commit().ok
        assert document.get_text() == '{\n  "a": 2,\n  "b": [\n    true\n  ]\n}'

    def test_last_style_wins(self):
        document, graph, _, ctl = _session('{"o": {"a": 1}}')
        _open(ctl, graph, ("o",))
        ctl.update_whole_value('{"a": 7}')
        ctl.update_field("a", "8")
        assert ctl.commit().ok
        assert json.loads(document.get_text()) == {"o": {"a": 8}}


# ═══════════════════════════════════════════════════════════════════
#  §7  FAILED COMMITS
# ═══════════════════════════════════════════════════════════════════

class TestFailedCommit:

    def test_invalid_whole_value(self):
        document, graph, notifier, ctl = _session('{"a":1,"b":{"c":2}}')
        _open(ctl, graph, ("b",))
        ctl.update_whole_value('{"c": 3,')
        result = ctl.commit()
        assert result.outcome is CommitOutcome.INVALID
        assert not result.ok
        assert ctl.state is SessionState.EDITING
        assert ctl.working_value == '{"c": 3,'
        assert document.get_text() == '{"a":1,"b":{"c":2}}'
        assert not document.dirty
        assert notifier.failures and not notifier.successes

    def test_retry_after_invalid(self):
        document, graph, _, ctl = _session('{"a":1,"b":{"c":2}}')
        _open(ctl, graph, ("b",))
        ctl.update_whole_value("nope")
        assert not ctl.commit().ok
        ctl.update_whole_value('{"c": 5}')
        assert ctl.commit().ok
        assert document.get_text() == '{"a":1,"b":{"c":5}}'

    def test_path_gone_in_field_mode(self):
        document, graph, notifier, ctl = _session('{"a": 1, "b": {"c": 2}}')
        _open(ctl, graph, ("b",))
        ctl.update_field("c", "3")
        document.set_text('{"a": 1}', True)  # changed elsewhere
        result = ctl.commit()
        assert result.outcome is CommitOutcome.PATH_UNRESOLVED
        assert ctl.state is SessionState.EDITING
        assert ctl.working_value == {"c": "3"}
        assert document.get_text() == '{"a": 1}'
        assert notifier.failures

    def test_path_gone_in_whole_value_mode(self):
        document, graph, _, ctl = _session('{"a": 1, "b": {"c": 2}}')
        _open(ctl, graph, ("b",))
        ctl.update_whole_value('{"c": 3}')
        document.set_text('{"a": 1}', True)
        result = ctl.commit()
        assert result.outcome is CommitOutcome.PATH_UNRESOLVED
        assert document.get_text() == '{"a": 1}'

    def test_value_no_longer_object(self):
        document, graph, _, ctl = _session('{"b": {"c": 2}}')
        _open(ctl, graph, ("b",))
        ctl.update_field("c", "3")
        document.set_text('{"b": [2]}', True)
        assert ctl.commit().outcome is CommitOutcome.PATH_UNRESOLVED

    def test_validation_error_type(self):
        assert issubclass(ValidationError, ValueError)

    @pytest.mark.parametrize("later_text,raw,outcome", [
        ('{"b": {"c": 2}}', "{", CommitOutcome.INVALID),
        ('{"a": 1}', '{"c": 3}', CommitOutcome.PATH_UNRESOLVED),
    ])
    def test_failure_logged_once(self, caplog, later_text, raw, outcome):
        document = InMemoryDocumentStore('{"b": {"c": 2}}')
        graph = InMemoryGraphStore()
        graph.attach(document)
        ctl = EditSessionController(document, graph)
        _open(ctl, graph, ("b",))
        ctl.update_whole_value(raw)
        document.set_text(later_text, True)

        caplog.set_level(logging.DEBUG, logger="jsonsplice")
        assert ctl.commit().outcome is outcome
        warnings = [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].getMessage().startswith("Failed to update value.")


# ═══════════════════════════════════════════════════════════════════
#  §8  REBUILD AND RESELECTION
# ═══════════════════════════════════════════════════════════════════

class TestReselection:

    def test_same_path_reselected(self):
        _, graph, _, ctl = _session('{"a":1,"b":{"c":2}}')
        old = _open(ctl, graph, ("b",))
        ctl.update_field("c", "3")
        assert ctl.commit().ok
        assert ctl.state is SessionState.VIEWING
        assert graph.selected is not None
        assert graph.selected.path == ("b",)
        assert graph.selected is not old
        assert ctl.node is graph.selected
        assert ctl.snapshot == {"c": 3}
        assert ctl.pending_path is None

    def test_shape_change_clears_selection(self):
        _, graph, notifier, ctl = _session('{"a":1,"b":{"c":2}}')
        _open(ctl, graph, ("b",))
        ctl.update_whole_value("5")
        assert ctl.commit().ok
        assert notifier.successes
        assert graph.selected is None
        assert ctl.node is None

    def test_rebuild_without_commit_is_ignored(self):
        _, graph, _, ctl = _session('{"a": 1}')
        assert ctl.handle_rebuild(graph.get_nodes()) is None

    def test_deferred_rebuild(self):
        """A graph store that rebuilds later signals completion explicitly."""
        document = InMemoryDocumentStore('{"k": {"v": 1}}')
        graph = DeferredGraph(document)
        ctl = EditSessionController(document, graph, RecordingNotifier())
        _open(ctl, graph, ("k",))
        ctl.update_field("v", "2")
        assert ctl.commit().ok
        assert ctl.pending_path == ("k",)
        assert graph.selected is None

        match = ctl.handle_rebuild(graph.rebuild())
        assert match is not None
        assert graph.selected is match
        assert ctl.snapshot == {"v": 2}

    def test_moving_on_cancels_pending_reselection(self):
        document = InMemoryDocumentStore('{"k": {"v": 1}, "m": {"w": 1}}')
        graph = DeferredGraph(document)
        ctl = EditSessionController(document, graph, RecordingNotifier())
        _open(ctl, graph, ("k",))
        ctl.update_field("v", "2")
        assert ctl.commit().ok

        _open(ctl, graph, ("m",))
        assert ctl.pending_path is None
        ctl.update_field("w", "9")

        assert ctl.handle_rebuild(graph.rebuild()) is None
        assert ctl.state is SessionState.EDITING
        assert ctl.node.path == ("m",)
        assert ctl.working_value == {"w": "9"}
        assert ctl.commit().ok
        assert json.loads(document.get_text()) == {"k": {"v": 2}, "m": {"w": 9}}

    def test_reopened_session_survives_late_rebuild(self):
        document = InMemoryDocumentStore('{"k": {"v": 1}}')
        graph = DeferredGraph(document)
        ctl = EditSessionController(document, graph, RecordingNotifier())
        _open(ctl, graph, ("k",))
        ctl.update_field("v", "2")
        assert ctl.commit().ok

        _open(ctl, graph, ("k",))
        ctl.update_field("v", "3")
        match = ctl.handle_rebuild(graph.rebuild())
        assert graph.selected is match
        assert ctl.state is SessionState.EDITING
        assert ctl.working_value == {"v": "3"}
        assert ctl.commit().ok
        assert document.get_text() == '{"k": {"v": 3}}'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
