"""Locate clause anchor text inside the contract body for highlighting.

Text extraction tends to change whitespace (line wraps, doubled spaces), so
anchors are matched with every whitespace run treated as ``\\s+`` and
case-insensitively. Only the first match per clause is used.

Overlapping anchors are not merged: matches are ordered by start offset and
where two overlap the later one owns the overlapping region. Concatenating
the segment texts always reproduces the document exactly.
"""

import re
from typing import Iterable, List, Optional

from loguru import logger
from msgspec import Struct

from copilot.models import NOT_AVAILABLE, Clause
from tools.text_normalizer import TextNormalizer


class AnchorMatch(Struct, frozen=True):
    start: int
    end: int
    clause_id: str


class Segment(Struct, frozen=True):
    """A run of document text; ``clause_id`` is None for plain text."""
    text: str
    clause_id: Optional[str] = None

    @property
    def highlighted(self) -> bool:
        return self.clause_id is not None


def create_flexible_pattern(anchor_text: str) -> Optional[re.Pattern]:
    """Build a whitespace-tolerant, case-insensitive matcher for an anchor.

    The anchor gets the same character replacements as the stored document,
    since the backend quotes the text it received before cleaning. Returns
    None for empty anchors and the "N/A" sentinel.
    """
    stripped = anchor_text.strip() if anchor_text else ""
    if not stripped or stripped == NOT_AVAILABLE:
        return None

    stripped = TextNormalizer().fix_encoding_issues(stripped)

    tokens = stripped.split()
    if not tokens:
        return None
    return re.compile(r"\s+".join(re.escape(token) for token in tokens), re.IGNORECASE)


def find_anchor_matches(text: str, clauses: Iterable[Clause]) -> List[AnchorMatch]:
    """First match of each clause's anchor in ``text``, sorted by start offset."""
    matches: List[AnchorMatch] = []

    for clause in clauses:
        pattern = create_flexible_pattern(clause.anchor_text)
        if pattern is None:
            continue

        found = pattern.search(text)
        if found is None:
            logger.debug(f"Anchor for clause {clause.id} not found in document")
            continue

        matches.append(AnchorMatch(start=found.start(), end=found.end(), clause_id=clause.id))

    matches.sort(key=lambda m: m.start)
    return matches


def build_segments(text: str, matches: List[AnchorMatch]) -> List[Segment]:
    """Partition ``text`` into alternating plain and highlighted segments.

    ``matches`` must be sorted by start. Single left-to-right pass; a match is
    cut short where the next match begins.
    """
    segments: List[Segment] = []
    cursor = 0

    for index, match in enumerate(matches):
        start = max(match.start, cursor)
        end = match.end
        if index + 1 < len(matches):
            end = min(end, matches[index + 1].start)

        if start > cursor:
            segments.append(Segment(text=text[cursor:start]))
        if end > start:
            segments.append(Segment(text=text[start:end], clause_id=match.clause_id))
            cursor = end
        else:
            cursor = max(cursor, start)

    if cursor < len(text):
        segments.append(Segment(text=text[cursor:]))

    return segments


def highlight_document(text: str, clauses: Iterable[Clause]) -> List[Segment]:
    """Segments of ``text`` with each locatable clause anchor highlighted."""
    return build_segments(text, find_anchor_matches(text, clauses))
