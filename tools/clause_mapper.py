"""Flag and clause derivation from an analysis result.

Flag ids are ``{severity}-{index}`` where index is the flag's position within
its own severity list. The id is assigned once when the analysis is set and
never recomputed, so removing a clause does not shift the others.
"""

from typing import List

from copilot.models import (
    NOT_AVAILABLE,
    AnalysisResult,
    Clause,
    Flag,
    FlagEntry,
    FlagPayload,
)


TITLE_MAX_LENGTH = 80

RISK_LEVELS = {
    "red": "high",
    "yellow": "medium",
}


def _to_flag(entry: FlagEntry, severity: str, index: int) -> Flag:
    if isinstance(entry, FlagPayload):
        analysis = entry.analysis
        original_text = entry.original_text or NOT_AVAILABLE
    else:
        analysis = entry
        original_text = NOT_AVAILABLE

    return Flag(
        id=f"{severity}-{index}",
        analysis=analysis,
        original_text=original_text,
        severity=severity,
    )


def flags_from_analysis(analysis: AnalysisResult) -> List[Flag]:
    """Flatten red, yellow then green flags, each in backend order."""
    flags: List[Flag] = []
    for severity, entries in (
        ("red", analysis.red_flags),
        ("yellow", analysis.yellow_flags),
        ("green", analysis.green_flags),
    ):
        for index, entry in enumerate(entries):
            flags.append(_to_flag(entry, severity, index))
    return flags


def clause_title(analysis_text: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Short label for a clause: text before the first colon, truncated."""
    head = analysis_text.split(":", 1)[0].strip() or analysis_text.strip()
    if len(head) > max_length:
        return head[:max_length - 3].rstrip() + "..."
    return head


def clause_from_flag(flag: Flag) -> Clause:
    return Clause(
        id=flag.id,
        title=clause_title(flag.analysis),
        body=flag.analysis,
        anchor_text=flag.original_text,
        risk_level=RISK_LEVELS[flag.severity],
    )


def clauses_from_flags(flags: List[Flag]) -> List[Clause]:
    """One clause per red or yellow flag, keeping flag order. Green flags are skipped."""
    return [clause_from_flag(flag) for flag in flags if flag.severity in RISK_LEVELS]
