"""
jsonsplice.session — Editing one node and writing it back.

STATES:

    VIEWING ──enter_edit()──▶ EDITING ──commit()──▶ SAVING
       ▲                        ▲  │                   │
       │                        │  └──cancel()──▶ VIEWING
       │                        └──── invalid / path miss
       └──────────────────── saved ───────────────────┘

While EDITING the user works in one of two styles:

    FIELDS        one text per scalar field; each text is parsed as a
                  JSON scalar if it is one, else kept as a string.
                  Only changed fields are merged over the value live at
                  the node's path, so nested composites survive.
    WHOLE_VALUE   one JSON text for the whole value, parsed strictly.

A successful commit replaces the document text with the patched text
and records the node's path.  The graph store rebuilds its nodes from
the new text and calls handle_rebuild(); the controller then selects
the rebuilt node with the same path, or clears the selection.

The controller only talks to the stores it is given: a document store,
a graph store and a notifier.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Optional, Protocol

from .core import JsonSyntaxError, Path, PathResolutionError, parse, resolve, value_at
from .formats import (
    DEFAULT_OPTIONS, FormattingOptions,
    field_text, parse_field_text, parse_value_text, path_to_string, to_canonical,
)
from .nodes import Node, build_snapshot, nodes_from_document, paths_equal, resynchronize
from .splice import patch_document

logger = logging.getLogger(__name__)

# Field key used for nodes holding a single unkeyed value
SINGLE_VALUE_KEY = "value"


# ═══════════════════════════════════════════════════════════════════
#  ERRORS AND RESULTS
# ═══════════════════════════════════════════════════════════════════

class ValidationError(ValueError):
    """Edited text does not form a valid value."""


class SessionStateError(RuntimeError):
    """An operation was called in a state that does not allow it."""


class SessionState(Enum):
    VIEWING = auto()
    EDITING = auto()
    SAVING = auto()


class EditStyle(Enum):
    FIELDS = auto()
    WHOLE_VALUE = auto()


class CommitOutcome(Enum):
    SAVED = auto()
    INVALID = auto()            # edited text rejected; document untouched
    PATH_UNRESOLVED = auto()    # node's path no longer in the document


@dataclass
class CommitResult:
    """Result of a commit."""
    outcome: CommitOutcome
    path: Path
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is CommitOutcome.SAVED

    def __repr__(self) -> str:
        where = path_to_string(self.path)
        if self.ok:
            return f"CommitResult(saved at {where})"
        return f"CommitResult({self.outcome.name} at {where}: {self.error})"


# ═══════════════════════════════════════════════════════════════════
#  STORES
# ═══════════════════════════════════════════════════════════════════

class DocumentStore(Protocol):
    def get_text(self) -> str: ...

    def set_text(self, text: str, dirty: bool) -> None: ...


class GraphStore(Protocol):
    def get_nodes(self) -> list[Node]: ...

    def set_selected_node(self, node: Optional[Node]) -> None: ...


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def failure(self, message: str) -> None: ...


class LoggingNotifier:
    """Reports save outcomes to the log."""

    def success(self, message: str) -> None:
        logger.info(message)

    def failure(self, message: str) -> None:
        logger.warning(message)


class InMemoryDocumentStore:
    """Document text held in memory; listeners hear every replacement."""

    def __init__(self, text: str = "{}"):
        self.text = text
        self.dirty = False
        self._listeners: list[Callable[[str], None]] = []

    def subscribe(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def get_text(self) -> str:
        return self.text

    def set_text(self, text: str, dirty: bool) -> None:
        self.text = text
        self.dirty = dirty
        for listener in list(self._listeners):
            listener(text)


class InMemoryGraphStore:
    """
    Node list rebuilt from document text.

    rebuild() replaces every node, then calls the rebuild listeners with
    the new list.  That call is the completion signal sessions wait for.
    """

    def __init__(self, options: FormattingOptions = DEFAULT_OPTIONS):
        self.options = options
        self.nodes: list[Node] = []
        self.selected: Optional[Node] = None
        self._listeners: list[Callable[[list[Node]], Any]] = []

    def attach(self, document: InMemoryDocumentStore) -> None:
        """Rebuild now and whenever `document` changes."""
        document.subscribe(self.rebuild)
        self.rebuild(document.get_text())

    def add_rebuild_listener(self, listener: Callable[[list[Node]], Any]) -> None:
        self._listeners.append(listener)

    def rebuild(self, text: str) -> None:
        try:
            self.nodes = nodes_from_document(text, self.options)
        except JsonSyntaxError as e:
            logger.warning("document does not parse, graph is empty: %s", e)
            self.nodes = []
        self.selected = None
        for listener in list(self._listeners):
            listener(self.nodes)

    def get_nodes(self) -> list[Node]:
        return self.nodes

    def set_selected_node(self, node: Optional[Node]) -> None:
        self.selected = node


# ═══════════════════════════════════════════════════════════════════
#  CONTROLLER
# ═══════════════════════════════════════════════════════════════════

class EditSessionController:
    """
    One edit session at a time over the selected node.

    Arguments:
        document:  DocumentStore holding the canonical text
        graph:     GraphStore holding the node list and selection
        notifier:  where save outcomes are reported (logs by default)
        options:   formatting for text the patcher introduces

    If the graph store offers add_rebuild_listener(), the controller
    registers handle_rebuild() with it; otherwise whoever rebuilds the
    graph must call handle_rebuild() when it is done.
    """

    def __init__(self, document: DocumentStore, graph: GraphStore,
                 notifier: Optional[Notifier] = None,
                 options: FormattingOptions = DEFAULT_OPTIONS):
        self.document = document
        self.graph = graph
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.options = options

        self._node: Optional[Node] = None
        self._state = SessionState.VIEWING
        self._style = EditStyle.FIELDS
        self._snapshot: Any = None
        self._initial_fields: dict[str, str] = {}
        self._fields: dict[str, str] = {}
        self._blob = ""
        self._pending_path: Optional[Path] = None

        listen = getattr(graph, "add_rebuild_listener", None)
        if callable(listen):
            listen(self.handle_rebuild)

    # ── read-only views ───────────────────────────────────────────

    @property
    def node(self) -> Optional[Node]:
        return self._node

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def style(self) -> EditStyle:
        return self._style

    @property
    def snapshot(self) -> Any:
        """Editable projection of the selected node."""
        return self._snapshot

    @property
    def working_value(self) -> Any:
        """Texts being edited: field texts by key, or the whole-value text."""
        if self._style is EditStyle.WHOLE_VALUE:
            return self._blob
        return dict(self._fields)

    @property
    def whole_value_text(self) -> str:
        """Whole-value text, kept even while fields are being edited."""
        return self._blob

    @property
    def display_path(self) -> str:
        return path_to_string(self._node.path) if self._node is not None else "$"

    @property
    def pending_path(self) -> Optional[Path]:
        """Path waiting for the next rebuild, if a commit just happened."""
        return self._pending_path

    # ── transitions ───────────────────────────────────────────────

    def select(self, node: Optional[Node]) -> None:
        """Show `node`; any open session is discarded."""
        if self._state is SessionState.EDITING:
            logger.debug("discarding edits at %s", self.display_path)
        if self._pending_path is not None and (
                node is None or not paths_equal(node.path, self._pending_path)):
            # moving elsewhere cancels the reselection after a commit
            self._pending_path = None
        self._node = node
        self._snapshot = build_snapshot(node.text) if node is not None else None
        self._clear_working()
        self._state = SessionState.VIEWING

    def enter_edit(self) -> None:
        """VIEWING → EDITING, with working texts taken from the snapshot."""
        if self._node is None:
            raise SessionStateError("no node selected")
        if self._state is SessionState.EDITING:
            return
        self._require(SessionState.VIEWING)

        self._snapshot = build_snapshot(self._node.text)
        if self._single_value:
            fields = {SINGLE_VALUE_KEY: field_text(self._snapshot)}
        else:
            fields = {key: field_text(value) for key, value in self._snapshot.items()}
        self._initial_fields = dict(fields)
        self._fields = dict(fields)
        self._blob = self._initial_blob()
        self._style = EditStyle.FIELDS
        self._state = SessionState.EDITING
        logger.debug("editing %s", self.display_path)

    def update_field(self, key: str, raw_text: str) -> None:
        """Set one field's text.  Single-value nodes use SINGLE_VALUE_KEY."""
        self._require(SessionState.EDITING)
        if key not in self._fields:
            raise KeyError(key)
        self._fields[key] = raw_text
        self._style = EditStyle.FIELDS

    def update_whole_value(self, raw_text: str) -> None:
        """Set the whole-value text; it is parsed strictly at commit."""
        self._require(SessionState.EDITING)
        self._blob = raw_text
        self._style = EditStyle.WHOLE_VALUE

    def cancel(self) -> None:
        """EDITING → VIEWING, dropping unsaved text."""
        self._require(SessionState.EDITING)
        self._clear_working()
        self._state = SessionState.VIEWING

    def commit(self) -> CommitResult:
        """
        Write the edit into the document.

        On success the document text is replaced (and marked dirty), the
        session returns to VIEWING and the node's path waits for the
        next rebuild.  On failure nothing is written, the session stays
        in EDITING with the user's text intact, and the notifier hears
        why.
        """
        self._require(SessionState.EDITING)
        path = self._node.path
        self._state = SessionState.SAVING
        text = self.document.get_text()

        try:
            value = self._new_value(text, path)
        except ValidationError as e:
            return self._fail(CommitOutcome.INVALID, path, str(e))
        except (PathResolutionError, JsonSyntaxError) as e:
            return self._fail(CommitOutcome.PATH_UNRESOLVED, path, str(e))

        try:
            result = patch_document(text, path, value, self.options)
        except (TypeError, ValueError) as e:
            return self._fail(CommitOutcome.INVALID, path, f"cannot serialize value: {e}")
        if not result.applied:
            return self._fail(CommitOutcome.PATH_UNRESOLVED, path, result.error)

        self._pending_path = path
        try:
            self.document.set_text(result.text, True)
        except Exception:
            self._pending_path = None
            self._state = SessionState.EDITING
            raise

        if self._state is SessionState.SAVING:
            self._clear_working()
            self._state = SessionState.VIEWING
        logger.debug("saved %s with %d edit(s)", path_to_string(path), len(result.edits))
        self.notifier.success("Value updated successfully")
        return CommitResult(CommitOutcome.SAVED, path, text=result.text)

    def handle_rebuild(self, nodes: list[Node]) -> Optional[Node]:
        """
        Completion signal of a graph rebuild.

        After a commit, selects the rebuilt node whose path equals the
        committed one, or clears the selection when there is none.
        Rebuilds with no commit pending are ignored, and so is a pending
        path the user has since navigated away from.  An edit session
        opened meanwhile on the same node is left alone.
        """
        if self._pending_path is None:
            return None
        path = self._pending_path
        self._pending_path = None

        match = resynchronize(path, nodes)
        if match is None:
            logger.warning("node at %s gone after rebuild; selection cleared",
                           path_to_string(path))
        self.graph.set_selected_node(match)
        if self._state is SessionState.EDITING:
            # the user reopened the same node before the rebuild landed
            logger.debug("keeping open session at %s", path_to_string(path))
            return match
        self.select(match)
        return match

    # ── internals ─────────────────────────────────────────────────

    @property
    def _single_value(self) -> bool:
        return self._node.is_single_value and not self._node.text[0].is_composite

    def _require(self, state: SessionState) -> None:
        if self._state is not state:
            raise SessionStateError(
                f"expected {state.name}, session is {self._state.name}")

    def _clear_working(self) -> None:
        self._initial_fields = {}
        self._fields = {}
        self._blob = ""
        self._style = EditStyle.FIELDS

    def _initial_blob(self) -> str:
        text = self.document.get_text()
        try:
            found = resolve(parse(text, self.options.allow_comments), self._node.path)
        except (PathResolutionError, JsonSyntaxError):
            value, source = self._snapshot, None
        else:
            value, source = found.to_python(), text[found.start:found.end]
        try:
            return to_canonical(value, self.options)
        except ValueError:
            # numbers like 1e400 read back as inf, which has no canonical text
            if source is not None:
                return source
            return json.dumps(value, indent=self.options.indent_unit, ensure_ascii=False)

    def _new_value(self, text: str, path: Path) -> Any:
        if self._style is EditStyle.WHOLE_VALUE:
            try:
                return parse_value_text(self._blob)
            except ValueError as e:
                raise ValidationError(f"Invalid JSON: {e}") from e

        edited = {key: raw for key, raw in self._fields.items()
                  if raw != self._initial_fields[key]}

        if self._single_value:
            if SINGLE_VALUE_KEY in edited:
                return parse_field_text(edited[SINGLE_VALUE_KEY]).value
            return self._snapshot

        live = value_at(text, path, self.options.allow_comments)
        if not isinstance(live, dict):
            raise PathResolutionError(path, len(path), f"expected object, found {type(live).__name__}")
        for key, raw in edited.items():
            live[key] = parse_field_text(raw).value
        return live

    def _fail(self, outcome: CommitOutcome, path: Path, message: str) -> CommitResult:
        self._state = SessionState.EDITING
        logger.debug("commit at %s failed (%s): %s",
                     path_to_string(path), outcome.name, message)
        self.notifier.failure(f"Failed to update value. {message}")
        return CommitResult(outcome, path, error=message)
