"""Word-level diff between two versions of the contract document."""

import difflib
import re
from typing import List

from msgspec import Struct


_TOKEN_RE = re.compile(r"\s+|[^\s]+")


class DiffPart(Struct, frozen=True):
    value: str
    added: bool = False
    removed: bool = False


def _tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall(text)


def diff_words(old_text: str, new_text: str) -> List[DiffPart]:
    """Diff two texts word by word, whitespace runs counted as tokens.

    Unchanged, removed and added runs are returned in document order;
    within a replacement the removed run precedes the added one.
    """
    old_tokens = _tokenize(old_text)
    new_tokens = _tokenize(new_text)
    matcher = difflib.SequenceMatcher(None, old_tokens, new_tokens, autojunk=False)

    parts: List[DiffPart] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            parts.append(DiffPart(value="".join(old_tokens[i1:i2])))
            continue
        if tag in ("replace", "delete"):
            parts.append(DiffPart(value="".join(old_tokens[i1:i2]), removed=True))
        if tag in ("replace", "insert"):
            parts.append(DiffPart(value="".join(new_tokens[j1:j2]), added=True))
    return parts


def render_diff(parts: List[DiffPart]) -> str:
    """Plain-text rendering: ``[-removed-]`` and ``{+added+}`` markers."""
    rendered = []
    for part in parts:
        if part.removed:
            rendered.append(f"[-{part.value}-]")
        elif part.added:
            rendered.append(f"{{+{part.value}+}}")
        else:
            rendered.append(part.value)
    return "".join(rendered)
