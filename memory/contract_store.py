"""Persisted session state for the loaded contract and its analysis.

The store is the single owner of the contract text, jurisdiction, analysis
result and the live flag list. Every setter computes its new values first and
assigns them together, then writes one snapshot to session storage, so the
analysis and its derived clause list are never observed half-updated.
"""

import time
from typing import List, Optional

import msgspec

from copilot.config import DEFAULT_JURISDICTION, JURISDICTIONS
from copilot.error_handling import SessionError
from copilot.logging_config import get_session_logger
from copilot.models import (
    AnalysisResult,
    Clause,
    Contract,
    ContractFile,
    Flag,
    PersistedContractState,
)
from memory.session_service import InMemorySessionStorage
from tools.clause_mapper import clauses_from_flags, flags_from_analysis
from tools.text_normalizer import clean_contract_text


STORAGE_KEY = "contract-storage"


def make_contract_id(filename: str) -> str:
    return f"{filename}-{int(time.time() * 1000)}"


class ContractStore:
    """Session-scoped, serializable contract state.

    The in-memory ``file`` handle is deliberately left out of the snapshot;
    after a reload it is None and must be re-acquired from the user.
    """

    def __init__(
        self,
        storage=None,
        session_id: str = "default",
        default_jurisdiction: str = DEFAULT_JURISDICTION
    ):
        """Create the store and rehydrate it from storage.

        Args:
            storage: Session storage (InMemorySessionStorage when omitted)
            session_id: Session the snapshot belongs to
            default_jurisdiction: Jurisdiction used until one is chosen
        """
        self.storage = storage if storage is not None else InMemorySessionStorage()
        self.session_id = session_id
        self.default_jurisdiction = default_jurisdiction
        self.log = get_session_logger(session_id, "contract_store")

        self._contract: Optional[Contract] = None
        self._analysis: Optional[AnalysisResult] = None
        self._flags: List[Flag] = []
        self._clauses: List[Clause] = []
        self._jurisdiction = default_jurisdiction
        self._file: Optional[ContractFile] = None
        self.revision = 0

        self._hydrate()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def contract(self) -> Optional[Contract]:
        return self._contract

    @property
    def analysis(self) -> Optional[AnalysisResult]:
        return self._analysis

    @property
    def flags(self) -> List[Flag]:
        return list(self._flags)

    @property
    def clauses(self) -> List[Clause]:
        return list(self._clauses)

    @property
    def jurisdiction(self) -> str:
        return self._jurisdiction

    @property
    def file(self) -> Optional[ContractFile]:
        return self._file

    @property
    def contract_text(self) -> str:
        return self._contract.cleaned_text if self._contract else ""

    def get_flag(self, flag_id: str) -> Optional[Flag]:
        return next((f for f in self._flags if f.id == flag_id), None)

    def get_clause(self, clause_id: str) -> Optional[Clause]:
        return next((c for c in self._clauses if c.id == clause_id), None)

    def clause_ids(self) -> List[str]:
        return [c.id for c in self._clauses]

    # ------------------------------------------------------------------
    # Setters
    # ------------------------------------------------------------------

    def set_contract(
        self,
        text: str,
        filename: str = "contract.txt",
        file: Optional[ContractFile] = None
    ) -> Contract:
        """Ingest contract text, replacing any previous contract and its analysis.

        Args:
            text: Raw contract text (cleaned once here; word-per-line joining
                only applies when ``filename`` is a .pdf)
            filename: Display name used for the contract id
            file: Optional in-memory binary of the uploaded document

        Returns:
            The stored Contract
        """
        cleaned = clean_contract_text(text, from_pdf=filename.lower().endswith(".pdf"))
        contract = Contract(
            id=make_contract_id(filename),
            raw_text=cleaned,
            cleaned_text=cleaned,
            jurisdiction=self._jurisdiction,
            filename=filename,
        )

        self._contract, self._file = contract, file
        self._analysis, self._flags, self._clauses = None, [], []
        self._commit("set_contract")
        self.log.info(f"Contract set: {contract.id} ({len(cleaned)} chars)")
        return contract

    def set_analysis(self, analysis: AnalysisResult) -> None:
        """Replace the analysis wholesale and re-derive flags and clauses.

        Raises:
            SessionError: If no contract is loaded
        """
        if self._contract is None:
            raise SessionError("Cannot set an analysis without a loaded contract")

        flags = flags_from_analysis(analysis)
        clauses = clauses_from_flags(flags)

        self._analysis, self._flags, self._clauses = analysis, flags, clauses
        self._commit("set_analysis")
        self.log.info(
            f"Analysis set: {len(flags)} flags, {len(clauses)} negotiable clauses",
            contract_type=analysis.contract_type
        )

    def load(
        self,
        text: str,
        analysis: AnalysisResult,
        filename: str = "contract.txt",
        file: Optional[ContractFile] = None
    ) -> Contract:
        """Set contract and analysis together with a single persisted write."""
        cleaned = clean_contract_text(text, from_pdf=filename.lower().endswith(".pdf"))
        contract = Contract(
            id=make_contract_id(filename),
            raw_text=cleaned,
            cleaned_text=cleaned,
            jurisdiction=self._jurisdiction,
            filename=filename,
        )
        flags = flags_from_analysis(analysis)
        clauses = clauses_from_flags(flags)

        self._contract, self._file = contract, file
        self._analysis, self._flags, self._clauses = analysis, flags, clauses
        self._commit("load")
        self.log.info(f"Contract loaded with analysis: {contract.id} ({len(clauses)} clauses)")
        return contract

    def set_jurisdiction(self, jurisdiction: str) -> None:
        jurisdiction = jurisdiction.strip() or self.default_jurisdiction
        if jurisdiction not in JURISDICTIONS:
            self.log.warning(f"Unrecognized jurisdiction: {jurisdiction}")

        self._jurisdiction = jurisdiction
        if self._contract is not None:
            self._contract.jurisdiction = jurisdiction
        self._commit("set_jurisdiction")

    def remove_clause(self, clause_id: str) -> bool:
        """Drop a negotiated clause (and its flag) from the live list.

        Returns:
            True if the clause was present
        """
        if self.get_clause(clause_id) is None:
            self.log.warning(f"Clause not found for removal: {clause_id}")
            return False

        flags = [f for f in self._flags if f.id != clause_id]
        clauses = [c for c in self._clauses if c.id != clause_id]

        self._flags, self._clauses = flags, clauses
        self._commit("remove_clause")
        self.log.info(f"Clause removed: {clause_id} ({len(clauses)} remaining)")
        return True

    def update_contract_text(self, text: str) -> None:
        """Overwrite the authoritative contract text (negotiated edits).

        Raises:
            SessionError: If no contract is loaded
        """
        if self._contract is None:
            raise SessionError("Cannot update text without a loaded contract")

        self._contract.cleaned_text = text
        self._contract.raw_text = text
        self._commit("update_contract_text")

    def reset(self) -> None:
        """Clear everything, including the persisted snapshot."""
        self._contract, self._file, self._analysis = None, None, None
        self._flags, self._clauses = [], []
        self._jurisdiction = self.default_jurisdiction
        self.revision += 1
        self.storage.remove_item(self.session_id, STORAGE_KEY)
        self.log.info("Contract store reset")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> PersistedContractState:
        return PersistedContractState(
            contract_id=self._contract.id if self._contract else "",
            contract_content=self.contract_text,
            contract_filename=self._contract.filename if self._contract else "",
            analysis_result=self._analysis,
            flags=list(self._flags),
            jurisdiction=self._jurisdiction,
        )

    def _commit(self, operation: str) -> None:
        self.revision += 1
        payload = msgspec.json.encode(self.snapshot()).decode()
        self.storage.set_item(self.session_id, STORAGE_KEY, payload)
        self.log.debug(f"Persisted snapshot after {operation}", revision=self.revision)

    def _hydrate(self) -> None:
        raw = self.storage.get_item(self.session_id, STORAGE_KEY)
        if not raw:
            return

        try:
            state = msgspec.json.decode(raw, type=PersistedContractState)
        except (msgspec.DecodeError, msgspec.ValidationError) as e:
            self.log.warning(f"Discarding unreadable stored session state: {e}")
            self.storage.remove_item(self.session_id, STORAGE_KEY)
            return

        self._jurisdiction = state.jurisdiction or self.default_jurisdiction

        if not state.contract_id:
            # An analysis without contract text is never restored
            return

        self._contract = Contract(
            id=state.contract_id,
            raw_text=state.contract_content,
            cleaned_text=state.contract_content,
            jurisdiction=self._jurisdiction,
            filename=state.contract_filename or "contract.txt",
        )
        self._analysis = state.analysis_result
        self._flags = list(state.flags) if state.analysis_result is not None else []
        self._clauses = clauses_from_flags(self._flags)
        self.log.info(f"Session state restored for contract {state.contract_id}")
