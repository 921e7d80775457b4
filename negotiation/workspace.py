"""
Negotiation Workspace - clause selection, chat and streamed edits.

Holds the per-session negotiation view state on top of the contract store:
- The selection set of clause ids (always a subset of live clauses)
- The chat transcript, including one "Selected" announcement per selection
- The live document text as it is rewritten by streamed edits
- Highlight segments for clause anchors, recomputed when text or clauses change

One negotiation turn runs at a time. A turn that reaches ``done`` removes its
targeted clauses; a turn that fails or ends early leaves them for a retry.
"""

from typing import Callable, Dict, List, Optional

import msgspec

from copilot.error_handling import CopilotError, InvalidInputError, SessionError
from copilot.logging_config import get_session_logger
from copilot.models import ChatMessage, Clause, HistoryEntry, NegotiationRequest, TurnOutcome
from memory.contract_store import ContractStore
from negotiation.reconciler import NegotiationReconciler
from negotiation.transcript import Transcript
from tools.clause_anchoring import Segment, highlight_document
from tools.document_diff import DiffPart, diff_words


SELECTED_PREFIX = "📌 Selected: "
SINGLE_CLAUSE_INSTRUCTION = 'Analyze and negotiate a better version of: "{body}"'
BATCH_INSTRUCTION = "Negotiate better versions of all selected clauses."

CONTRACT_VIEW = "contract"
CLAUSES_VIEW = "clauses"


class NegotiationWorkspace:
    """Interactive negotiation state for one loaded contract."""

    def __init__(
        self,
        store: ContractStore,
        client,
        on_update: Optional[Callable[[str], None]] = None
    ):
        """Initialize the workspace.

        Args:
            store: Contract store holding text, analysis and live clauses
            client: ContractAnalysisClient used to open negotiation streams
            on_update: Optional callback, called with "transcript" or
                "document" whenever either changes during a turn
        """
        if store.contract is None:
            raise SessionError("No contract loaded; analyze a contract before negotiating")

        self.store = store
        self.client = client
        self.on_update = on_update
        self.log = get_session_logger(store.session_id, "workspace")

        self.transcript = Transcript()
        self.document = store.contract_text
        self.active_view = CLAUSES_VIEW
        self.is_processing = False

        self._selected: List[str] = []
        self._announcements: Dict[str, ChatMessage] = {}
        self._turn_start_document = self.document
        self._highlight_key = None
        self._highlights: List[Segment] = []
        self._reconciler: Optional[NegotiationReconciler] = None
        self._stream = None

    # ------------------------------------------------------------------
    # Clauses and selection
    # ------------------------------------------------------------------

    @property
    def clauses(self) -> List[Clause]:
        return self.store.clauses

    @property
    def selected_ids(self) -> List[str]:
        self._prune_selection()
        return list(self._selected)

    def is_selected(self, clause_id: str) -> bool:
        return clause_id in self.selected_ids

    def _require_clause(self, clause_id: str) -> Clause:
        clause = self.store.get_clause(clause_id)
        if clause is None:
            raise InvalidInputError(f"Unknown or already negotiated clause: {clause_id}")
        return clause

    def toggle_selection(self, clause_id: str) -> bool:
        """Select or deselect a clause.

        Selecting announces the clause in the transcript once; deselecting
        withdraws that announcement so a later selection announces again.

        Returns:
            True if the clause is selected after the call
        """
        clause = self._require_clause(clause_id)

        if clause_id in self._selected:
            self._selected.remove(clause_id)
            self._withdraw_announcement(clause_id)
            self.log.debug(f"Clause deselected: {clause_id}")
            return False

        self._selected.append(clause_id)
        if clause_id not in self._announcements:
            self._announcements[clause_id] = self.transcript.append("user", f"{SELECTED_PREFIX}{clause.title}")
        self.log.debug(f"Clause selected: {clause_id}")
        return True

    def clear_selection(self) -> None:
        for clause_id in list(self._selected):
            self._withdraw_announcement(clause_id)
        self._selected = []

    def _withdraw_announcement(self, clause_id: str) -> None:
        message = self._announcements.pop(clause_id, None)
        if message is not None:
            self.transcript.remove_message(message)

    def _forget(self, clause_ids: List[str]) -> None:
        """Drop negotiated clauses from the selection, keeping their announcements."""
        for clause_id in clause_ids:
            if clause_id in self._selected:
                self._selected.remove(clause_id)
            self._announcements.pop(clause_id, None)

    def _prune_selection(self) -> None:
        live = set(self.store.clause_ids())
        stale = [cid for cid in self._selected if cid not in live]
        if stale:
            self._forget(stale)

    # ------------------------------------------------------------------
    # Document view
    # ------------------------------------------------------------------

    def highlighted_segments(self) -> List[Segment]:
        """Document split into plain and clause-highlighted segments."""
        # Clause ids repeat across analyses, so the store revision is part of the key
        key = (self.document, self.store.revision)
        if key != self._highlight_key:
            self._highlights = highlight_document(self.document, self.clauses)
            self._highlight_key = key
        return self._highlights

    def document_changes(self) -> List[DiffPart]:
        """Word diff between the document before the last turn and now."""
        return diff_words(self._turn_start_document, self.document)

    def _set_document(self, text: str) -> None:
        self.document = text
        self._notify("document")

    def _set_view(self, view: str) -> None:
        self.active_view = CONTRACT_VIEW if view == "document" else view

    def _notify(self, what: str) -> None:
        if self.on_update is not None:
            self.on_update(what)

    # ------------------------------------------------------------------
    # Negotiation turns
    # ------------------------------------------------------------------

    def negotiate_one(self, clause_id: str, instruction: Optional[str] = None) -> TurnOutcome:
        """Negotiate a single clause."""
        clause = self._require_clause(clause_id)
        message = (instruction or "").strip() or SINGLE_CLAUSE_INSTRUCTION.format(body=clause.body)
        return self._run_turn([clause], message)

    def negotiate_many(
        self,
        clause_ids: Optional[List[str]] = None,
        instruction: Optional[str] = None
    ) -> TurnOutcome:
        """Negotiate several clauses in one turn (the current selection by default)."""
        ids = list(clause_ids) if clause_ids is not None else self.selected_ids
        if not ids:
            raise InvalidInputError("Select at least one clause to negotiate.")

        clauses = [self._require_clause(cid) for cid in ids]
        message = (instruction or "").strip() or BATCH_INSTRUCTION
        return self._run_turn(clauses, message)

    def send_message(self, text: str) -> TurnOutcome:
        """Send a free-form chat message with no targeted clauses."""
        if not text or not text.strip():
            raise InvalidInputError("Message is empty.")
        if self.is_processing:
            raise InvalidInputError("A negotiation is already in progress.")

        # The message itself is not part of the history it is sent with
        history = self.transcript.to_history()
        self.transcript.append("user", text.strip())
        return self._run_turn([], text.strip(), history=history)

    def build_request(
        self,
        clauses: List[Clause],
        message: str,
        history: Optional[List[HistoryEntry]] = None
    ) -> NegotiationRequest:
        analysis = self.store.analysis
        return NegotiationRequest(
            message=message,
            contract_context=self.document,
            jurisdiction=self.store.jurisdiction,
            analysis_context=msgspec.to_builtins(analysis) if analysis is not None else {},
            selected_clause="\n\n".join(c.body for c in clauses),
            history=history if history is not None else self.transcript.to_history(),
        )

    def _run_turn(
        self,
        clauses: List[Clause],
        message: str,
        history: Optional[List[HistoryEntry]] = None
    ) -> TurnOutcome:
        if self.is_processing:
            raise InvalidInputError("A negotiation is already in progress.")

        target_ids = [c.id for c in clauses]
        request = self.build_request(clauses, message, history)
        self._turn_start_document = self.document

        reconciler = NegotiationReconciler(
            self.transcript,
            on_document=self._set_document,
            on_view_change=self._set_view,
            session_id=self.store.session_id,
        )
        self._reconciler = reconciler
        self.is_processing = True
        self.log.info(f"Negotiation turn started for {len(target_ids)} clause(s)", clause_ids=target_ids)

        try:
            reconciler.begin()
            try:
                stream = self.client.open_negotiation_stream(request)
            except CopilotError as e:
                reconciler.fail(e)
                return reconciler.outcome

            self._stream = stream
            if reconciler.cancelled:
                stream.close()
                return reconciler.outcome

            try:
                outcome = reconciler.consume(_chunks_with_notify(stream.chunks(), self._notify))
            except KeyboardInterrupt:
                reconciler.cancel()
                outcome = reconciler.outcome
            finally:
                stream.close()
        finally:
            self.is_processing = False
            self._stream = None
            self._reconciler = None

        self._settle(outcome, target_ids)
        return outcome

    def _settle(self, outcome: TurnOutcome, target_ids: List[str]) -> None:
        if outcome.cancelled:
            self.log.info("Negotiation turn cancelled; no clauses removed")
            return

        if outcome.edited:
            self.store.update_contract_text(self.document)

        if outcome.completed:
            for clause_id in target_ids:
                self.store.remove_clause(clause_id)
            self._forget(target_ids)
            self.log.info(f"Negotiation turn completed; removed {len(target_ids)} clause(s)")
        else:
            self.log.warning("Negotiation turn did not complete; clauses kept for retry")

    def cancel(self) -> None:
        """Abandon the running turn, if any. Later stream data is ignored."""
        if self._reconciler is not None:
            self._reconciler.cancel()
        if self._stream is not None:
            self._stream.close()

    def reload_document(self) -> None:
        """Re-read the document from the store (after a re-analysis).

        Clause ids are reassigned by a new analysis, so the selection and its
        announcements are dropped.
        """
        self.clear_selection()
        self._announcements = {}
        self.document = self.store.contract_text
        self._turn_start_document = self.document


def _chunks_with_notify(chunks, notify: Callable[[str], None]):
    for chunk in chunks:
        yield chunk
        notify("transcript")
