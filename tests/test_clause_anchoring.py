from copilot.models import Clause
from tools.clause_anchoring import (
    AnchorMatch,
    build_segments,
    create_flexible_pattern,
    find_anchor_matches,
    highlight_document,
)
from tools.text_normalizer import clean_contract_text


def clause(clause_id, anchor):
    return Clause(id=clause_id, title=clause_id, body=clause_id, anchor_text=anchor, risk_level="high")


def test_anchor_matches_across_whitespace_and_case():
    text = "The Customer shall Pay within   30\ndays of invoice."
    segments = highlight_document(text, [clause("yellow-0", "pay within 30 days")])

    highlighted = [s for s in segments if s.highlighted]
    assert len(highlighted) == 1
    assert highlighted[0].text == "Pay within   30\ndays"
    assert highlighted[0].clause_id == "yellow-0"


def test_regex_metacharacters_are_literal():
    pattern = create_flexible_pattern("fees (plus VAT) apply*")

    assert pattern.search("All fees  (plus vat) apply* here")
    assert pattern.search("All fees plus VAT apply") is None


def test_empty_and_sentinel_anchors_produce_no_pattern():
    assert create_flexible_pattern("") is None
    assert create_flexible_pattern("   ") is None
    assert create_flexible_pattern("N/A") is None


def test_only_first_occurrence_is_used():
    text = "late fee applies. late fee applies again."
    matches = find_anchor_matches(text, [clause("red-0", "late fee")])

    assert matches == [AnchorMatch(start=0, end=8, clause_id="red-0")]


def test_unfound_anchor_is_skipped():
    segments = highlight_document("Nothing relevant here.", [clause("red-0", "indemnify")])

    assert [s.text for s in segments] == ["Nothing relevant here."]
    assert not segments[0].highlighted


def test_overlapping_anchors_later_match_owns_overlap():
    text = "alpha beta gamma delta"
    segments = highlight_document(text, [
        clause("red-0", "alpha beta gamma"),
        clause("red-1", "beta gamma delta"),
    ])

    assert [(s.text, s.clause_id) for s in segments] == [
        ("alpha ", "red-0"),
        ("beta gamma delta", "red-1"),
    ]


def test_segments_concatenate_to_document():
    text = "One two three. Four five six. Seven eight nine."
    cases = [
        [],
        [clause("a", "two three")],
        [clause("a", "One two"), clause("b", "two three. Four")],
        [clause("a", "nine."), clause("b", "Seven"), clause("c", "missing")],
        [clause("a", "One two three. Four five six. Seven eight nine.")],
    ]

    for clauses in cases:
        segments = highlight_document(text, clauses)
        assert "".join(s.text for s in segments) == text


def test_contained_match_is_swallowed_by_later_start():
    matches = [
        AnchorMatch(start=0, end=20, clause_id="outer"),
        AnchorMatch(start=5, end=10, clause_id="inner"),
    ]
    text = "x" * 25

    segments = build_segments(text, matches)

    assert "".join(s.text for s in segments) == text
    assert [(len(s.text), s.clause_id) for s in segments] == [
        (5, "outer"),
        (5, "inner"),
        (15, None),
    ]


def test_curly_punctuation_anchor_matches_normalized_document():
    document = clean_contract_text("The Tenant’s liability is unlimited — see Schedule A.")
    segments = highlight_document(document, [clause("red-0", "Tenant’s liability is unlimited — see")])

    highlighted = [s for s in segments if s.highlighted]
    assert [s.text for s in highlighted] == ["Tenant's liability is unlimited -- see"]


def test_anchor_of_only_removed_characters_produces_no_pattern():
    assert create_flexible_pattern("\u00ad\ufeff") is None
