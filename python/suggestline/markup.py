"""
Pure text transformation utilities: emphasis stripping, sentinel detection,
and CriticMarkup output for diff token streams.
"""

import re
from typing import Iterable, List, Optional

from suggestline.models import DiffKind, DiffToken

# Applied once, in order. Nested delimiters are not fully unwound.
# Underscore forms require a non-word neighbour so snake_case survives.
_EMPHASIS_PATTERNS = [
    re.compile(r"\*\*([^*]+)\*\*"),
    re.compile(r"\*([^*]+)\*"),
    re.compile(r"(?<![A-Za-z0-9])__([^_]+)__(?![A-Za-z0-9])"),
    re.compile(r"(?<![A-Za-z0-9])_([^_]+)_(?![A-Za-z0-9])"),
    re.compile(r"~~([^~]+)~~"),
]

_SENTINELS = {"", "null", "undefined", "{}", "none"}
_NULL_OBJECT_MARKERS = ('"original":null', '"suggested":null')


def normalize(text: Optional[str]) -> str:
    """Strips bold/italic/strikethrough delimiters, keeping the inner text."""
    if not text:
        return ""
    if not isinstance(text, str):
        text = str(text)
    for pattern in _EMPHASIS_PATTERNS:
        text = pattern.sub(r"\1", text)
    return text


def normalize_optional(text: Optional[str]) -> Optional[str]:
    """Like normalize(), but keeps a missing or empty value as None."""
    if not text:
        return None
    return normalize(text)


def is_blank_value(value) -> bool:
    """
    True for values that should not be rendered: empty text, the literal
    strings 'null' / 'undefined' / '{}', or a stringified null-object.
    """
    if value is None:
        return True
    if isinstance(value, dict):
        return value.get("original") is None and value.get("suggested") is None
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if trimmed.lower() in _SENTINELS:
        return True
    compact = trimmed.replace(" ", "")
    return any(marker in compact for marker in _NULL_OBJECT_MARKERS)


def is_full_rewrite(tokens: List[DiffToken]) -> bool:
    """A full rewrite is exactly one deleted block followed by one inserted block."""
    return (
        len(tokens) == 2
        and tokens[0].kind == DiffKind.DELETED
        and tokens[1].kind == DiffKind.INSERTED
    )


def _wrap(kind: DiffKind, words: List[str]) -> str:
    text = " ".join(words)
    if kind == DiffKind.DELETED:
        return f"{{--{text}--}}"
    if kind == DiffKind.INSERTED:
        return f"{{++{text}++}}"
    return text


def render_critic_markup(tokens: Iterable[DiffToken]) -> str:
    """
    Renders a token stream as CriticMarkup.

    Runs of same-kind tokens are grouped: {--old words--}{++new words++}.
    A full rewrite is rendered as two lines, deletion above insertion.
    """
    tokens = list(tokens)
    if not tokens:
        return ""

    if is_full_rewrite(tokens):
        return f"{{--{tokens[0].text}--}}\n{{++{tokens[1].text}++}}"

    parts: List[str] = []
    run_kind: Optional[DiffKind] = None
    run_words: List[str] = []

    for token in tokens:
        if token.kind != run_kind and run_words:
            parts.append(_wrap(run_kind, run_words))
            run_words = []
        run_kind = token.kind
        run_words.append(token.text)

    if run_words:
        parts.append(_wrap(run_kind, run_words))

    # A deletion directly followed by its replacement reads as one change.
    result = parts[0]
    for prev, part in zip(parts, parts[1:]):
        glued = prev.endswith("--}") and part.startswith("{++")
        result += part if glued else " " + part
    return result
