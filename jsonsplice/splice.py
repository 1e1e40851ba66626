"""
jsonsplice.splice — Path-addressed, format-preserving patching.

Given document text, a path and a new value, produce new document text
in which only the addressed value changed.

ALGORITHM:
    1. Empty path → the canonical serialization of the value replaces
       the whole document.
    2. Parse the document losslessly (jsonsplice.core) and resolve the
       path.
    3. Diff the old subtree against the new value, structurally:
       • equal scalars              → nothing
       • object vs dict             → recurse per kept key, delete
                                      removed members, append new ones
       • array vs list              → recurse per position, append or
                                      drop the tail
       • anything else              → replace the span
    4. Every step of the diff is a TextEdit (offset, length, content)
       against the ORIGINAL text.  Edits never overlap; applying them
       left to right produces the result.

Bytes outside the edits are copied through untouched, so indentation,
key order and comments elsewhere in the document survive.  New text is
laid out to match its surroundings: block-indented when the enclosing
container spans several lines, inline (with the document's own
separator spacing) when it does not.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Optional

from .core import (
    JArray, JAtom, JObject, JVal,
    Path, PathResolutionError, JsonSyntaxError,
    parse, resolve, skip_trivia,
)
from .formats import (
    DEFAULT_OPTIONS, FormattingOptions,
    path_to_string, scalar_kind, to_block, to_canonical, to_inline,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  TEXT EDITS
# ═══════════════════════════════════════════════════════════════════

class EditOp(Enum):
    """Kinds of text edit."""
    REPLACE = auto()    # Replace a value's span
    INSERT = auto()     # Insert new members/items
    DELETE = auto()     # Remove members/items with their separators


@dataclass(frozen=True)
class TextEdit:
    """Replace `length` characters at `offset` with `content`."""
    offset: int
    length: int
    content: str
    op: EditOp = EditOp.REPLACE
    path: Path = ()

    @property
    def end(self) -> int:
        return self.offset + self.length

    def __repr__(self) -> str:
        where = path_to_string(self.path)
        if self.op == EditOp.INSERT:
            return f"INSERT at {where} @{self.offset}: {self.content!r}"
        if self.op == EditOp.DELETE:
            return f"DELETE at {where} @{self.offset}+{self.length}"
        return f"REPLACE at {where} @{self.offset}+{self.length}: {self.content!r}"


def apply_edits(text: str, edits: list[TextEdit]) -> str:
    """
    Apply non-overlapping edits computed against `text`.

    Edits may be given in any order.  Overlapping edits raise ValueError.
    """
    ordered = sorted(edits, key=lambda e: (e.offset, e.length))
    pieces: list[str] = []
    pos = 0
    for edit in ordered:
        if edit.offset < pos:
            raise ValueError(f"overlapping edits at offset {edit.offset}")
        pieces.append(text[pos:edit.offset])
        pieces.append(edit.content)
        pos = edit.end
    pieces.append(text[pos:])
    return "".join(pieces)


# ═══════════════════════════════════════════════════════════════════
#  LAYOUT
# ═══════════════════════════════════════════════════════════════════

def _line_indent(text: str, pos: int) -> str:
    """Leading whitespace of the line containing `pos`."""
    line_start = text.rfind("\n", 0, pos) + 1
    i = line_start
    while i < pos and text[i] in " \t":
        i += 1
    return text[line_start:i]


def _spans_lines(text: str, node: JVal) -> bool:
    return "\n" in text[node.start:node.end]


def _children(node: JVal) -> list[JVal]:
    if isinstance(node, JObject):
        return [m.value for m in node.members]
    if isinstance(node, JArray):
        return list(node.items)
    return []


def _walk(node: JVal):
    yield node
    for child in _children(node):
        yield from _walk(child)


def _sniff_separators(text: str, root: JVal, allow_comments: bool) -> tuple[str, str]:
    """
    (item, key) separators the document already uses.

    The key separator comes from the first member's colon; the item
    separator from the first comma inside a single-line container.  When
    the document has no single-line list of two or more entries, the
    item separator follows the key separator's spacing.
    """
    key_sep = None
    item_sep = None
    for node in _walk(root):
        if key_sep is None and isinstance(node, JObject) and node.members:
            colon = node.members[0].colon
            key_sep = ": " if text[colon + 1:colon + 2] == " " else ":"
        children = _children(node)
        if item_sep is None and len(children) >= 2 and not _spans_lines(text, node):
            comma = skip_trivia(text, children[0].end, allow_comments)
            item_sep = ", " if text[comma + 1:comma + 2] == " " else ","
        if key_sep is not None and item_sep is not None:
            break
    if key_sep is None:
        key_sep = ": "
    if item_sep is None:
        item_sep = ", " if key_sep == ": " else ","
    return item_sep, key_sep


@dataclass
class _Context:
    """Per-document facts shared by every edit of one patch."""
    text: str
    options: FormattingOptions
    eol: str
    separators: tuple[str, str]

    @classmethod
    def for_document(cls, text: str, root: JVal, options: FormattingOptions) -> "_Context":
        if "\r\n" in text:
            eol = "\r\n"
        elif "\n" in text:
            eol = "\n"
        else:
            eol = options.eol
        seps = _sniff_separators(text, root, options.allow_comments)
        return cls(text, options, eol, seps)

    def render(self, value: Any, at: int, block: bool) -> str:
        """Text for `value` placed at offset `at`."""
        if block and isinstance(value, (dict, list)) and value:
            return to_block(value, _line_indent(self.text, at), self.options, self.eol)
        return to_inline(value, self.separators)

    def render_member(self, key: Optional[str], value: Any, indent: str, block: bool) -> str:
        """Text for a new object member (or array item when key is None)."""
        if block and isinstance(value, (dict, list)) and value:
            body = to_block(value, indent, self.options, self.eol)
        else:
            body = to_inline(value, self.separators)
        if key is None:
            return body
        return json.dumps(key, ensure_ascii=False) + self.separators[1] + body


# ═══════════════════════════════════════════════════════════════════
#  STRUCTURAL DIFF → EDITS
# ═══════════════════════════════════════════════════════════════════

def _same_scalar(old: Any, new: Any) -> bool:
    # bool must not compare equal to 1/0
    if isinstance(new, (dict, list)):
        return False
    return scalar_kind(new) is scalar_kind(old) and old == new


def _replace(ctx: _Context, node: JVal, value: Any, path: Path,
             container: Optional[JVal]) -> TextEdit:
    block = _spans_lines(ctx.text, node) or (
        container is not None and _spans_lines(ctx.text, container))
    content = ctx.render(value, node.start, block)
    return TextEdit(node.start, node.end - node.start, content, EditOp.REPLACE, path)


def _clear(node: JVal, path: Path) -> TextEdit:
    """Remove everything between a container's brackets."""
    return TextEdit(node.start + 1, node.end - node.start - 2, "", EditOp.DELETE, path)


def _append(ctx: _Context, node: JVal, entries: list[tuple[Optional[str], Any]],
            path: Path, container: Optional[JVal]) -> TextEdit:
    """
    Add entries after the last member/item of `node`.

    `entries` holds (key, value) pairs for objects and (None, value)
    pairs for arrays.  An empty `node` is rewritten whole, block-style
    only when its `container` spans several lines.
    """
    text = ctx.text
    if isinstance(node, JObject):
        starts = [m.key_start for m in node.members]
        opener, closer = "{", "}"
    else:
        starts = [item.start for item in node.items]
        opener, closer = "[", "]"
    children = _children(node)
    item_sep = ctx.separators[0]

    if children:
        last_end = children[-1].end
        if _spans_lines(text, node):
            indent = _line_indent(text, starts[-1])
            content = "".join(
                "," + ctx.eol + indent + ctx.render_member(k, v, indent, True)
                for k, v in entries)
        else:
            content = "".join(
                item_sep + ctx.render_member(k, v, "", False) for k, v in entries)
        return TextEdit(last_end, 0, content, EditOp.INSERT, path)

    # Empty container: rewrite it whole
    if container is not None and _spans_lines(text, container):
        base = _line_indent(text, node.start)
        inner = base + ctx.options.indent_unit
        body = ("," + ctx.eol).join(
            inner + ctx.render_member(k, v, inner, True) for k, v in entries)
        content = opener + ctx.eol + body + ctx.eol + base + closer
    else:
        content = opener + item_sep.join(
            ctx.render_member(k, v, "", False) for k, v in entries) + closer
    return TextEdit(node.start, node.end - node.start, content, EditOp.INSERT, path)


def _diff_object(ctx: _Context, node: JObject, new: dict, path: Path,
                 container: Optional[JVal]) -> list[TextEdit]:
    live = {}
    for m in node.members:
        live[m.key] = m  # last duplicate wins
    # shadowed duplicates go too, or they would resurface
    removed = [i for i, m in enumerate(node.members) if m.key not in new]
    added = [k for k in new if k not in live]

    if removed and added:
        # Losing and gaining keys at once: rewrite the object
        return [_replace(ctx, node, new, path, node)]

    edits: list[TextEdit] = []
    for key, m in live.items():
        if key in new:
            edits.extend(_diff(ctx, m.value, new[key], path + (key,), node))

    if removed:
        edits.extend(_delete_entries(
            node, [(m.key_start, m.value.end) for m in node.members], removed, path))
    if added:
        edits.append(_append(ctx, node, [(k, new[k]) for k in added], path, container))
    return edits


def _delete_entries(node: JVal, spans: list[tuple[int, int]], removed: list[int],
                    path: Path) -> list[TextEdit]:
    """
    Edits removing the entries at indices `removed`.

    An entry followed by a kept entry is cut up to the next entry's
    start (taking its comma and the following whitespace with it).
    A trailing run of removed entries is cut from the end of the last
    kept entry, taking the comma before it.
    """
    if len(removed) == len(spans):
        return [_clear(node, path)]

    gone = set(removed)
    last_kept = max(i for i in range(len(spans)) if i not in gone)
    edits: list[TextEdit] = []
    for i in sorted(gone):
        if i < last_kept:
            start, end = spans[i][0], spans[i + 1][0]
            edits.append(TextEdit(start, end - start, "", EditOp.DELETE, path))
    if len(spans) - 1 > last_kept:
        start, end = spans[last_kept][1], spans[-1][1]
        edits.append(TextEdit(start, end - start, "", EditOp.DELETE, path))
    return edits


def _diff_array(ctx: _Context, node: JArray, new: list, path: Path,
                container: Optional[JVal]) -> list[TextEdit]:
    old = node.items
    edits: list[TextEdit] = []
    for i in range(min(len(old), len(new))):
        edits.extend(_diff(ctx, old[i], new[i], path + (i,), node))

    if len(new) > len(old):
        edits.append(_append(ctx, node, [(None, v) for v in new[len(old):]], path, container))
    elif len(new) < len(old):
        spans = [(item.start, item.end) for item in old]
        edits.extend(_delete_entries(node, spans, list(range(len(new), len(old))), path))
    return edits


def _diff(ctx: _Context, node: JVal, new: Any, path: Path,
          container: Optional[JVal]) -> list[TextEdit]:
    """Minimal edits turning the text of `node` into text for `new`."""
    if isinstance(node, JObject) and isinstance(new, dict):
        return _diff_object(ctx, node, new, path, container)
    if isinstance(node, JArray) and isinstance(new, list):
        return _diff_array(ctx, node, new, path, container)
    if isinstance(node, JAtom) and _same_scalar(node.val, new):
        return []
    return [_replace(ctx, node, new, path, container)]


# ═══════════════════════════════════════════════════════════════════
#  PATCH
# ═══════════════════════════════════════════════════════════════════

def _json_model(value: Any) -> Any:
    # Raises TypeError for values json cannot write at all
    return json.loads(json.dumps(value, ensure_ascii=False))


def compute_edits(text: str, path: Path, value: Any,
                  options: FormattingOptions = DEFAULT_OPTIONS) -> list[TextEdit]:
    """
    Edits that set the value at `path` in `text` to `value`.

    The whole path must address an existing value; new members and
    items only appear inside that value.

    `value` is first brought to its JSON data model: tuples become
    lists and object keys become strings, as json.dumps writes them.
    NaN and infinities are only rejected where they would be written
    as new text; ones already spelled in the document stay put.

    Raises:
        JsonSyntaxError       the document does not parse
        PathResolutionError   the path does not address a value
        ValueError/TypeError  `value` is not JSON-serializable
    """
    path = tuple(path)
    value = _json_model(value)

    if not path:
        return [TextEdit(0, len(text), to_canonical(value, options), EditOp.REPLACE, ())]

    root = parse(text, options.allow_comments)
    ctx = _Context.for_document(text, root, options)
    parent = resolve(root, path[:-1])
    target = resolve(root, path)
    edits = _diff(ctx, target, value, path, parent)

    logger.debug("%d edit(s) for %s: %r", len(edits), path_to_string(path), edits)
    return edits


@dataclass
class PatchResult:
    """Outcome of patch_document."""
    text: str
    applied: bool
    edits: list[TextEdit] = field(default_factory=list)
    error: Optional[str] = None

    def __repr__(self) -> str:
        if not self.applied:
            return f"PatchResult(NOT APPLIED: {self.error})"
        return f"PatchResult({len(self.edits)} edit(s))"


def patch_document(text: str, path: Path, value: Any,
                   options: FormattingOptions = DEFAULT_OPTIONS) -> PatchResult:
    """
    Set the value at `path` in `text`, preserving all other formatting.

    A path that does not resolve, or a document that does not parse,
    leaves the text unchanged: the result has applied=False and the
    reason in `error`.  Callers decide how to surface that.
    """
    try:
        edits = compute_edits(text, path, value, options)
    except (JsonSyntaxError, PathResolutionError) as e:
        logger.info("patch at %s not applied: %s", path_to_string(tuple(path)), e)
        return PatchResult(text=text, applied=False, error=str(e))
    return PatchResult(text=apply_edits(text, edits), applied=True, edits=edits)


def patch_text(text: str, path: Path, value: Any,
               options: FormattingOptions = DEFAULT_OPTIONS) -> str:
    """New document text; the original text when the path does not resolve."""
    return patch_document(text, path, value, options).text
