"""
jsonsplice
==========

Edit one value of a JSON document through a node view, and write the
edit back into the document text without disturbing anything else.

    patch_text('{"a":1,"b":{"c":2}}', ("b",), {"c": 3, "d": 4})
        → '{"a":1,"b":{"c":3,"d":4}}'
    patch_text('[1,2,3]', (1,), 5)
        → '[1,5,3]'
    patch_text('{\\n  "x": 1\\n}', (), {"x": 2})
        → canonical text of {"x": 2}

Three pieces do the work:
  • build_snapshot   — a node's scalar field rows as one editable value
  • patch_document   — a format-preserving splice at a path, computed
                       against a lossless parse of the text
  • resynchronize    — find the node at the same path once the node
                       list has been rebuilt from the new text

EditSessionController ties them into an edit session over explicit
document and graph stores.
"""

from jsonsplice.core import (
    # Syntax tree
    JVal,
    JAtom,
    JArray,
    JObject,
    JMember,
    parse,
    resolve,
    value_at,
    # Errors
    JsonSyntaxError,
    PathResolutionError,
)
from jsonsplice.formats import (
    FormattingOptions, DEFAULT_OPTIONS,
    Scalar, ScalarKind, parse_field_text, parse_value_text,
    to_canonical, path_to_string,
)
from jsonsplice.splice import (
    EditOp, TextEdit, PatchResult,
    apply_edits, compute_edits, patch_document, patch_text,
)
from jsonsplice.nodes import (
    Field, FieldType, Node,
    build_snapshot, fields_from_value, build_nodes, nodes_from_document,
    paths_equal, resynchronize,
)
from jsonsplice.session import (
    EditSessionController, SessionState, EditStyle,
    CommitOutcome, CommitResult,
    ValidationError, SessionStateError,
    InMemoryDocumentStore, InMemoryGraphStore, LoggingNotifier,
    SINGLE_VALUE_KEY,
)

__version__ = "0.1.0"
__all__ = [
    "JVal", "JAtom", "JArray", "JObject", "JMember",
    "parse", "resolve", "value_at",
    "JsonSyntaxError", "PathResolutionError",
    "FormattingOptions", "DEFAULT_OPTIONS",
    "Scalar", "ScalarKind", "parse_field_text", "parse_value_text",
    "to_canonical", "path_to_string",
    "EditOp", "TextEdit", "PatchResult",
    "apply_edits", "compute_edits", "patch_document", "patch_text",
    "Field", "FieldType", "Node",
    "build_snapshot", "fields_from_value", "build_nodes", "nodes_from_document",
    "paths_equal", "resynchronize",
    "EditSessionController", "SessionState", "EditStyle",
    "CommitOutcome", "CommitResult",
    "ValidationError", "SessionStateError",
    "InMemoryDocumentStore", "InMemoryGraphStore", "LoggingNotifier",
    "SINGLE_VALUE_KEY",
]
