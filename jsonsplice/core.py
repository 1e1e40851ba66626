"""
jsonsplice.core — Lossless JSON Syntax Tree
============================================

FRAMEWORK
═════════

§1  THE PROBLEM
───────────────

An editor that shows a document as a graph of nodes has to write an
edited value back into the document TEXT.  The obvious route is:

    json.loads(text)  →  mutate the value  →  json.dumps(value)

That route destroys everything the user wrote that is not part of the
data model: indentation, spacing around separators, the order of keys
in objects the user never touched, comments.  A one-character edit
becomes a rewrite of the whole file.

The fix is to parse into a tree that remembers WHERE every value lives
in the source, so an edit can be expressed as a replacement of a byte
range instead of a reserialization.


§2  THE TREE
────────────

DEFINITION (Syntax value):
The set J of syntax values is the smallest set satisfying:

    (1)  JAtom(start, end, v)                       ∈ J   v a JSON scalar
    (2)  JArray(start, end, (j₁, ..., jₙ))           ∈ J   jᵢ ∈ J
    (3)  JObject(start, end, (m₁, ..., mₙ))          ∈ J
         where mᵢ = JMember(key, key_start, key_end, colon, jᵢ)

Every value carries the half-open span [start, end) of its source text.
For containers the span runs from the opening bracket to one past the
closing bracket.  Whitespace and comments between tokens ("trivia")
belong to no value: they are exactly the bytes an edit must not touch.

Key design choice: JObject keeps members as an ORDERED tuple, not a
dict.  Source order is part of the formatting we promise to preserve.
Lookup by key scans from the end, so duplicate keys resolve to the last
occurrence, the same answer json.loads gives.


§3  PATHS
─────────

A path is a tuple of segments.  A str segment selects an object member
by key; an int segment selects an array item by index.  bool is NOT an
index even though Python treats it as an int.

    resolve(root, ())               = root
    resolve(JObject, (k, *rest))    = resolve(member k's value, rest)
    resolve(JArray,  (i, *rest))    = resolve(items[i], rest)

Anything else is a PathResolutionError that records how deep the walk
got before it failed.


§4  INVARIANT
─────────────

For every value j in parse(text):

    j.to_python() == json.loads(text[j.start:j.end])

(modulo comments, which json.loads rejects).  The patcher relies on
this: the span of a value is exactly the text that spells it.

License: MIT
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

PathSegment = Union[str, int]
Path = tuple[PathSegment, ...]


# ═══════════════════════════════════════════════════════════════════
#  ERRORS
# ═══════════════════════════════════════════════════════════════════

class JsonSyntaxError(ValueError):
    """The document text is not valid JSON (comments allowed)."""

    def __init__(self, message: str, offset: int):
        super().__init__(f"{message} at offset {offset}")
        self.message = message
        self.offset = offset


class PathResolutionError(LookupError):
    """A path does not address a value in the document."""

    def __init__(self, path: Path, depth: int, reason: str):
        super().__init__(f"cannot resolve {list(path)!r} at segment {depth}: {reason}")
        self.path = tuple(path)
        self.depth = depth
        self.reason = reason


# ═══════════════════════════════════════════════════════════════════
#  SYNTAX TREE TYPES
# ═══════════════════════════════════════════════════════════════════

class JVal:
    """Base class for syntax values.  Not instantiated directly."""
    __slots__ = ()

    def to_python(self) -> Any:
        """Plain Python value spelled by this node."""
        raise NotImplementedError

    @property
    def kind(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class JAtom(JVal):
    """
    A scalar: string, number, true, false or null.

    Examples:
        JAtom(0, 7, "hello")     # source text '"hello"'
        JAtom(5, 7, 42)
    """
    start: int
    end: int
    val: Any

    def to_python(self) -> Any:
        return self.val

    @property
    def kind(self) -> str:
        if self.val is None:
            return "null"
        if isinstance(self.val, bool):
            return "boolean"
        if isinstance(self.val, str):
            return "string"
        return "number"

    def __repr__(self) -> str:
        return f"JAtom({self.start}:{self.end} {self.val!r})"


@dataclass(frozen=True, slots=True)
class JArray(JVal):
    """An ordered sequence of syntax values between '[' and ']'."""
    start: int
    end: int
    items: tuple[JVal, ...]

    def to_python(self) -> list:
        return [item.to_python() for item in self.items]

    @property
    def kind(self) -> str:
        return "array"

    def __len__(self) -> int:
        return len(self.items)

    def __repr__(self) -> str:
        return f"JArray({self.start}:{self.end} len={len(self.items)})"


@dataclass(frozen=True, slots=True)
class JMember:
    """One `"key": value` pair of an object, with its source offsets."""
    key: str
    key_start: int
    key_end: int
    colon: int
    value: JVal

    def __repr__(self) -> str:
        return f"JMember({self.key!r} @{self.key_start}: {self.value!r})"


@dataclass(frozen=True, slots=True)
class JObject(JVal):
    """
    An object between '{' and '}'.

    Members stay in source order; duplicates are kept in the tree but
    `member()` and `to_python()` both let the last occurrence win.
    """
    start: int
    end: int
    members: tuple[JMember, ...]

    def member(self, key: str) -> Optional[JMember]:
        for m in reversed(self.members):
            if m.key == key:
                return m
        return None

    def to_python(self) -> dict:
        return {m.key: m.value.to_python() for m in self.members}

    @property
    def kind(self) -> str:
        return "object"

    def __len__(self) -> int:
        return len(self.members)

    def __repr__(self) -> str:
        keys = [m.key for m in self.members]
        if len(keys) <= 3:
            return f"JObject({self.start}:{self.end} {keys})"
        return f"JObject({self.start}:{self.end} len={len(keys)})"


# ═══════════════════════════════════════════════════════════════════
#  SCANNER
# ═══════════════════════════════════════════════════════════════════

_NUMBER_RE = re.compile(r"-?(?:0|[1-9][0-9]*)(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?")
_LITERALS = (("true", True), ("false", False), ("null", None))
_WHITESPACE = " \t\n\r"


def skip_trivia(text: str, pos: int, allow_comments: bool = True) -> int:
    """
    Return the offset of the first non-trivia character at or after `pos`.

    Trivia is JSON whitespace and, when allowed, `//` line comments and
    `/* */` block comments.
    """
    n = len(text)
    while pos < n:
        ch = text[pos]
        if ch in _WHITESPACE:
            pos += 1
            continue
        if allow_comments and ch == "/" and pos + 1 < n:
            nxt = text[pos + 1]
            if nxt == "/":
                eol = text.find("\n", pos + 2)
                pos = n if eol < 0 else eol + 1
                continue
            if nxt == "*":
                close = text.find("*/", pos + 2)
                if close < 0:
                    raise JsonSyntaxError("unterminated block comment", pos)
                pos = close + 2
                continue
        break
    return pos


class _Parser:
    """Recursive-descent parser that records spans."""

    def __init__(self, text: str, allow_comments: bool):
        self.text = text
        self.allow_comments = allow_comments

    def skip(self, pos: int) -> int:
        return skip_trivia(self.text, pos, self.allow_comments)

    def value(self, pos: int) -> JVal:
        text = self.text
        if pos >= len(text):
            raise JsonSyntaxError("unexpected end of input", pos)
        ch = text[pos]
        if ch == "{":
            return self.obj(pos)
        if ch == "[":
            return self.array(pos)
        if ch == '"':
            end = self.string_end(pos)
            return JAtom(pos, end, self.decode(pos, end))

        m = _NUMBER_RE.match(text, pos)
        if m:
            return JAtom(pos, m.end(), self.decode(pos, m.end()))
        for word, val in _LITERALS:
            if text.startswith(word, pos):
                return JAtom(pos, pos + len(word), val)
        raise JsonSyntaxError(f"unexpected character {ch!r}", pos)

    def string_end(self, pos: int) -> int:
        """Offset one past the closing quote of the string opening at `pos`."""
        text = self.text
        i = pos + 1
        n = len(text)
        while i < n:
            ch = text[i]
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                return i + 1
            if ch == "\n":
                break
            i += 1
        raise JsonSyntaxError("unterminated string", pos)

    def decode(self, start: int, end: int) -> Any:
        try:
            return json.loads(self.text[start:end])
        except json.JSONDecodeError as e:
            raise JsonSyntaxError(e.msg, start + e.pos) from e

    def array(self, start: int) -> JArray:
        items: list[JVal] = []
        pos = self.skip(start + 1)
        if pos < len(self.text) and self.text[pos] == "]":
            return JArray(start, pos + 1, ())
        while True:
            item = self.value(pos)
            items.append(item)
            pos = self.skip(item.end)
            if pos >= len(self.text):
                raise JsonSyntaxError("unterminated array", start)
            if self.text[pos] == ",":
                pos = self.skip(pos + 1)
                continue
            if self.text[pos] == "]":
                return JArray(start, pos + 1, tuple(items))
            raise JsonSyntaxError("expected ',' or ']'", pos)

    def obj(self, start: int) -> JObject:
        members: list[JMember] = []
        text = self.text
        pos = self.skip(start + 1)
        if pos < len(text) and text[pos] == "}":
            return JObject(start, pos + 1, ())
        while True:
            if pos >= len(text) or text[pos] != '"':
                raise JsonSyntaxError("expected property name", pos)
            key_end = self.string_end(pos)
            key = self.decode(pos, key_end)
            colon = self.skip(key_end)
            if colon >= len(text) or text[colon] != ":":
                raise JsonSyntaxError("expected ':'", colon)
            value = self.value(self.skip(colon + 1))
            members.append(JMember(key, pos, key_end, colon, value))
            pos = self.skip(value.end)
            if pos >= len(text):
                raise JsonSyntaxError("unterminated object", start)
            if text[pos] == ",":
                pos = self.skip(pos + 1)
                continue
            if text[pos] == "}":
                return JObject(start, pos + 1, tuple(members))
            raise JsonSyntaxError("expected ',' or '}'", pos)


def parse(text: str, allow_comments: bool = True) -> JVal:
    """
    Parse document text into a lossless syntax tree.

    The whole text must hold exactly one value, optionally surrounded by
    trivia.  Raises JsonSyntaxError on malformed input.
    """
    parser = _Parser(text, allow_comments)
    pos = parser.skip(0)
    root = parser.value(pos)
    tail = parser.skip(root.end)
    if tail != len(text):
        raise JsonSyntaxError("unexpected trailing content", tail)
    return root


# ═══════════════════════════════════════════════════════════════════
#  PATH RESOLUTION
# ═══════════════════════════════════════════════════════════════════

def is_index(segment: Any) -> bool:
    """True for int path segments, excluding bool."""
    return isinstance(segment, int) and not isinstance(segment, bool)


def step(node: JVal, segment: PathSegment) -> Optional[JVal]:
    """Follow one path segment from `node`, or None when it does not exist."""
    if isinstance(node, JObject) and isinstance(segment, str):
        m = node.member(segment)
        return m.value if m is not None else None
    if isinstance(node, JArray) and is_index(segment):
        if 0 <= segment < len(node.items):
            return node.items[segment]
    return None


def resolve(root: JVal, path: Path) -> JVal:
    """Walk `path` from `root`, raising PathResolutionError on a miss."""
    node = root
    for depth, segment in enumerate(path):
        child = step(node, segment)
        if child is None:
            raise PathResolutionError(
                path, depth, f"no {segment!r} in {node.kind}")
        node = child
    return node


def value_at(text: str, path: Path, allow_comments: bool = True) -> Any:
    """
    Plain Python value at `path` in document `text`.

    The result is freshly built from the tree, so callers may mutate it.
    """
    return resolve(parse(text, allow_comments), tuple(path)).to_python()
