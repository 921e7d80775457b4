"""
Data Models - msgspec Structs for efficient serialization.

These models define the records exchanged with the analysis service and the
state persisted by the contract store. Using msgspec provides:
- Fast JSON serialization/deserialization
- Type validation at runtime when decoding backend payloads
- camelCase/snake_case wire names without hand-written codecs
"""

from typing import Any, Dict, List, Literal, Optional, Union

import msgspec
from msgspec import Struct


NOT_AVAILABLE = "N/A"

Severity = Literal["red", "yellow", "green"]
RiskLevel = Literal["high", "medium"]
Role = Literal["user", "agent"]


class ContractFile(Struct):
    """Uploaded document held in memory only. Never persisted."""
    filename: str
    content: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        if "." not in self.filename:
            return ""
        return "." + self.filename.rsplit(".", 1)[1].lower()


class Contract(Struct, kw_only=True):
    """Contract text as held by the session store.

    ``raw_text`` is replaced by ``cleaned_text`` right after ingestion; from
    then on ``cleaned_text`` is authoritative and edited in place.
    """
    id: str
    raw_text: str
    cleaned_text: str
    jurisdiction: str
    filename: str = "contract.txt"


class KeyDetail(Struct):
    label: str
    value: str


class FlagPayload(Struct):
    """Flag as the backend sends it when it includes the quoted excerpt."""
    analysis: str
    original_text: str = NOT_AVAILABLE


FlagEntry = Union[str, FlagPayload]


class AnalysisResult(Struct, kw_only=True):
    """Risk report produced by /analyze_contract/. Replaced wholesale, never merged."""
    contract_type: str = "Unknown"
    key_details: List[KeyDetail] = []
    red_flags: List[FlagEntry] = []
    yellow_flags: List[FlagEntry] = []
    green_flags: List[FlagEntry] = []
    summary: str = msgspec.field(default="", name="plain_english_summary")
    health_score: float = msgspec.field(default=0.0, name="total_health_score")


class Flag(Struct):
    """A backend-identified risk or strength with a stable id."""
    id: str
    analysis: str
    original_text: str
    severity: Severity = msgspec.field(name="type")


class Clause(Struct):
    """Negotiable unit derived from a red or yellow flag."""
    id: str
    title: str
    body: str
    anchor_text: str
    risk_level: RiskLevel


class ChatMessage(Struct):
    role: Role
    text: str


class HistoryEntry(Struct):
    role: Role
    content: str


class NegotiationRequest(Struct, kw_only=True):
    """Body of POST /negotiate/chat/."""
    message: str
    contract_context: str
    jurisdiction: str
    analysis_context: Dict[str, Any] = {}
    selected_clause: str = ""
    history: List[HistoryEntry] = []


class StreamEvent(Struct):
    """One newline-delimited record of the negotiation stream."""
    type: str
    content: Optional[str] = None


class TurnOutcome(Struct, kw_only=True):
    """Result of one negotiation turn."""
    completed: bool = False
    edited: bool = False
    cancelled: bool = False
    error: Optional[str] = None


class PersistedContractState(Struct, kw_only=True, rename="camel"):
    """Snapshot written to session storage. File binaries are excluded."""
    contract_id: str = ""
    contract_content: str = ""
    contract_filename: str = ""
    analysis_result: Optional[AnalysisResult] = None
    flags: List[Flag] = []
    jurisdiction: str = ""
