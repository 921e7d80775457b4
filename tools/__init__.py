"""Tools package for contract text processing utilities."""

from tools.text_normalizer import TextNormalizer, FileValidator, clean_contract_text
from tools.clause_mapper import flags_from_analysis, clauses_from_flags, clause_title
from tools.clause_anchoring import (
    AnchorMatch,
    Segment,
    create_flexible_pattern,
    find_anchor_matches,
    build_segments,
    highlight_document,
)
from tools.document_diff import DiffPart, diff_words, render_diff

__all__ = [
    "TextNormalizer",
    "FileValidator",
    "clean_contract_text",
    "flags_from_analysis",
    "clauses_from_flags",
    "clause_title",
    "AnchorMatch",
    "Segment",
    "create_flexible_pattern",
    "find_anchor_matches",
    "build_segments",
    "highlight_document",
    "DiffPart",
    "diff_words",
    "render_diff",
]
