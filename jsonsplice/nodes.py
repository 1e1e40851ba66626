"""
jsonsplice.nodes — The node view of a document.

A document is shown as a list of nodes.  Each node stands for the value
at one path and carries its content as field rows:

    {"name": "Ada", "tags": ["x"]}   at ()
        → Node((), [Field("name", "Ada", STRING),
                     Field("tags", None, ARRAY)])
    "x"                              at ("tags", 0)
        → Node(("tags", 0), [Field(None, "x", STRING)])

Composite rows (OBJECT/ARRAY) are markers only: their content is in the
child nodes.  Nodes have no identity beyond their path, and the whole
list is rebuilt every time the document text changes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence

from .core import Path, is_index, parse
from .formats import DEFAULT_OPTIONS, FormattingOptions, path_to_string

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  TYPES
# ═══════════════════════════════════════════════════════════════════

class FieldType(Enum):
    """JSON type of a field row."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    OBJECT = "object"
    ARRAY = "array"

    @property
    def is_composite(self) -> bool:
        return self in (FieldType.OBJECT, FieldType.ARRAY)

    @classmethod
    def of(cls, value: Any) -> "FieldType":
        if value is None:
            return cls.NULL
        if isinstance(value, bool):  # before int
            return cls.BOOLEAN
        if isinstance(value, (int, float)):
            return cls.NUMBER
        if isinstance(value, str):
            return cls.STRING
        if isinstance(value, dict):
            return cls.OBJECT
        if isinstance(value, (list, tuple)):
            return cls.ARRAY
        raise TypeError(f"not a JSON value: {type(value).__name__}")


@dataclass(frozen=True)
class Field:
    """One row of a node: an optional key, a scalar value, its type."""
    key: Optional[str]
    value: Any
    type: FieldType

    @property
    def is_composite(self) -> bool:
        return self.type.is_composite


@dataclass(frozen=True)
class Node:
    """The value at `path`, presented as field rows."""
    path: Path
    text: tuple[Field, ...]

    def __init__(self, path: Iterable, text: Iterable[Field] = ()):
        object.__setattr__(self, "path", tuple(path))
        object.__setattr__(self, "text", tuple(text))

    @property
    def is_single_value(self) -> bool:
        """Exactly one row and it has no key."""
        return len(self.text) == 1 and self.text[0].key is None

    def __repr__(self) -> str:
        return f"Node({path_to_string(self.path)}, {len(self.text)} field(s))"


# ═══════════════════════════════════════════════════════════════════
#  SNAPSHOT
# ═══════════════════════════════════════════════════════════════════

def build_snapshot(fields: Optional[Sequence[Field]]) -> Any:
    """
    Editable value of a node's rows.

        no rows                  → {}
        one row without a key    → that row's scalar value
        otherwise                → {key: value} for every keyed scalar row

    Composite rows never appear: they are edited through their own node.
    A lone unkeyed composite row therefore also gives {}.
    """
    if not fields:
        return {}
    if len(fields) == 1 and fields[0].key is None:
        only = fields[0]
        return {} if only.is_composite else only.value
    return {f.key: f.value for f in fields
            if f.key is not None and not f.is_composite}


def fields_from_value(value: Any) -> tuple[Field, ...]:
    """
    Field rows describing `value`.

    A dict gives one keyed row per member (composite members as
    markers); anything else gives a single unkeyed row.
    """
    if isinstance(value, dict):
        rows = []
        for key, item in value.items():
            kind = FieldType.of(item)
            rows.append(Field(key, None if kind.is_composite else item, kind))
        return tuple(rows)
    kind = FieldType.of(value)
    return (Field(None, None if kind.is_composite else value, kind),)


def build_nodes(value: Any) -> list[Node]:
    """
    Node list for a document value, parents before children.

    Objects and scalars become nodes; arrays do not get a node of their
    own, their items do.
    """
    nodes: list[Node] = []
    _collect(value, (), nodes)
    return nodes


def _collect(value: Any, path: Path, out: list[Node]) -> None:
    if isinstance(value, dict):
        out.append(Node(path, fields_from_value(value)))
        for key, item in value.items():
            if isinstance(item, (dict, list)):
                _collect(item, path + (key,), out)
    elif isinstance(value, list):
        for i, item in enumerate(value):
            _collect(item, path + (i,), out)
    else:
        out.append(Node(path, fields_from_value(value)))


def nodes_from_document(text: str, options: FormattingOptions = DEFAULT_OPTIONS) -> list[Node]:
    """Parse document text and build its node list."""
    return build_nodes(parse(text, options.allow_comments).to_python())


# ═══════════════════════════════════════════════════════════════════
#  RESYNCHRONIZATION
# ═══════════════════════════════════════════════════════════════════

def _segment_equal(a: Any, b: Any) -> bool:
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if is_index(a) and is_index(b):
        return a == b
    return False


def paths_equal(a: Sequence, b: Sequence) -> bool:
    """Element-wise path equality; "1" and 1 are different segments."""
    return len(a) == len(b) and all(_segment_equal(x, y) for x, y in zip(a, b))


def resynchronize(path: Path, nodes: Iterable[Node]) -> Optional[Node]:
    """
    Node of a freshly rebuilt list whose path equals `path`.

    Returns None when no node matches, e.g. after an edit changed the
    shape of the document.
    """
    for node in nodes:
        if paths_equal(node.path, path):
            return node
    logger.debug("no node at %s after rebuild", path_to_string(tuple(path)))
    return None
