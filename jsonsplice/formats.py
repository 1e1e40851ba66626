"""
jsonsplice.formats — Converting between edited text and values.

Supported conversions:
    • Python value → canonical document text (root replacement)
    • Python value → inline or block-indented fragment (splicing)
    • Whole-value editor text → value (strict JSON)
    • Field editor text → tagged scalar (JSON if possible, else string)
    • Path → display string ($["customer"][0])
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .core import Path


# ═══════════════════════════════════════════════════════════════════
#  FORMATTING OPTIONS
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FormattingOptions:
    """
    How newly introduced text is laid out.

    tab_size:       indent width for new block-formatted structure
    insert_spaces:  indent with spaces (False → one tab per level)
    eol:            line ending used when the document has none to copy
    allow_comments: accept // and /* */ comments when parsing documents
    """
    tab_size: int = 2
    insert_spaces: bool = True
    eol: str = "\n"
    allow_comments: bool = True

    @property
    def indent_unit(self) -> str:
        return " " * self.tab_size if self.insert_spaces else "\t"


DEFAULT_OPTIONS = FormattingOptions()


def _reject_constant(name: str) -> Any:
    # json.loads accepts NaN/Infinity by default; JSON does not
    raise ValueError(f"{name} is not valid JSON")


# ═══════════════════════════════════════════════════════════════════
#  SERIALIZATION
# ═══════════════════════════════════════════════════════════════════

def to_canonical(value: Any, options: FormattingOptions = DEFAULT_OPTIONS) -> str:
    """
    Canonical pretty-printed text of `value`.

    Used when the whole document is replaced (empty path).  Prior
    formatting is discarded; the result is fully determined by `value`
    and the indent setting.
    """
    return json.dumps(value, indent=options.indent_unit,
                      ensure_ascii=False, allow_nan=False)


def to_inline(value: Any, separators: tuple[str, str] = (", ", ": ")) -> str:
    """Single-line text of `value` using the given (item, key) separators."""
    return json.dumps(value, separators=separators,
                      ensure_ascii=False, allow_nan=False)


def to_block(value: Any, base_indent: str, options: FormattingOptions = DEFAULT_OPTIONS,
             eol: str = "\n") -> str:
    """
    Multi-line text of `value` for splicing at a position whose line is
    indented by `base_indent`.

    The first line carries no indent (it continues the current line);
    every following line is prefixed with `base_indent`.
    """
    text = to_canonical(value, options)
    if "\n" not in text:
        return text
    return text.replace("\n", eol + base_indent)


# ═══════════════════════════════════════════════════════════════════
#  PARSING EDITOR TEXT
# ═══════════════════════════════════════════════════════════════════

def parse_value_text(raw: str) -> Any:
    """
    Strict JSON parse of whole-value editor text.

    Raises ValueError (json.JSONDecodeError is a subclass) on any
    malformed input, including NaN and Infinity.
    """
    return json.loads(raw, parse_constant=_reject_constant)


class ScalarKind(Enum):
    """Tag of a field value parsed from editor text."""
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    STRING = "string"


@dataclass(frozen=True)
class Scalar:
    """A field value together with how it was recognized."""
    kind: ScalarKind
    value: Any

    def __repr__(self) -> str:
        return f"Scalar({self.kind.value}, {self.value!r})"


def scalar_kind(value: Any) -> ScalarKind:
    """Kind of a plain scalar; bool is checked before int."""
    if value is None:
        return ScalarKind.NULL
    if isinstance(value, bool):
        return ScalarKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ScalarKind.NUMBER
    if isinstance(value, str):
        return ScalarKind.STRING
    raise TypeError(f"not a JSON scalar: {type(value).__name__}")


def parse_field_text(raw: str) -> Scalar:
    """
    Lenient parse of one field's editor text.

    Two branches, nothing else:
        1. the text is a JSON scalar literal → that scalar
           ("42" → 42, "true" → True, "null" → None, '"x"' → "x")
        2. otherwise → the raw text as a string
           ("hello" → "hello", "[1, 2" → "[1, 2")

    JSON arrays and objects typed into a field stay literal strings:
    composite values are edited through their own node.
    """
    try:
        value = json.loads(raw, parse_constant=_reject_constant)
    except ValueError:
        return Scalar(ScalarKind.STRING, raw)
    if isinstance(value, (dict, list)):
        return Scalar(ScalarKind.STRING, raw)
    return Scalar(scalar_kind(value), value)


def field_text(value: Any) -> str:
    """
    Editor text for a scalar field value.

    Strings are shown raw; everything else as its JSON literal, so that
    parse_field_text(field_text(v)) gives back v for non-string v.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


# ═══════════════════════════════════════════════════════════════════
#  DISPLAY
# ═══════════════════════════════════════════════════════════════════

def path_to_string(path: Path) -> str:
    """
    Display form of a path.

        ()                   → $
        ("customer",)        → $["customer"]
        ("items", 0, "id")   → $["items"][0]["id"]

    For display only; addressing always uses the segment tuple.
    """
    if not path:
        return "$"
    segments = [
        json.dumps(seg, ensure_ascii=False) if isinstance(seg, str) else str(seg)
        for seg in path
    ]
    return "$[" + "][".join(segments) + "]"
