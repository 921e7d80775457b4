"""
Contract Review Orchestrator - coordinates service calls with session state.

Runs the non-streaming workflows against the analysis service and records
their results in the contract store:
    Ingest (paste or upload) -> Analyze -> Report (explain / redline)
    Negotiated document -> Re-analyze

The store is only written after the service call succeeds, so a failed
analysis never leaves an analysis without its contract text (or the reverse).
"""

from typing import Dict, Optional

from loguru import logger

from client.api_client import ContractAnalysisClient
from copilot.config import Settings, load_settings
from copilot.error_handling import InvalidInputError, SessionError
from copilot.models import NOT_AVAILABLE, AnalysisResult, ContractFile, Flag
from memory.contract_store import ContractStore
from memory.session_service import SQLiteSessionStorage
from tools.text_normalizer import FileValidator


def explanation_context(analysis: Optional[AnalysisResult]) -> str:
    """Context string sent along with a risk explanation request."""
    if analysis is None:
        return ""
    return f"Contract Type: {analysis.contract_type}. Summary: {analysis.summary}"


class ContractReviewOrchestrator:
    """
    Coordinates analysis, explanation and redline calls for one session.

    Negotiation is handled by NegotiationWorkspace on top of the same store.
    """

    def __init__(self, client, store: ContractStore):
        """Initialize the orchestrator.

        Args:
            client: ContractAnalysisClient
            store: ContractStore for the session
        """
        self.client = client
        self.store = store
        self._explanations: Dict[str, str] = {}

        logger.info("ContractReviewOrchestrator initialized", session_id=store.session_id)

    def analyze_text(self, text: str, jurisdiction: Optional[str] = None) -> AnalysisResult:
        """Analyze pasted contract text and load it into the store.

        Raises:
            InvalidInputError: If the text is blank
            TransportError: If the service call fails
        """
        if not text or not text.strip():
            raise InvalidInputError("Please enter some text to analyze.")

        if jurisdiction:
            self.store.set_jurisdiction(jurisdiction)

        result = self.client.submit_for_analysis(text, self.store.jurisdiction)
        self.store.load(text, result, filename="contract_text.txt")
        self._explanations = {}

        logger.info(
            "Pasted contract analyzed",
            contract_type=result.contract_type,
            clauses=len(self.store.clauses)
        )
        return result

    def analyze_file(self, file: ContractFile, jurisdiction: Optional[str] = None) -> AnalysisResult:
        """Analyze an uploaded document and load it into the store.

        Plain-text uploads are decoded locally; other formats go through the
        extraction endpoint to obtain the document text.
        """
        if jurisdiction:
            self.store.set_jurisdiction(jurisdiction)

        if file.extension == ".txt":
            if file.size == 0:
                raise InvalidInputError("File is empty")
            text = file.content.decode("utf-8", errors="replace")
        else:
            text = self.client.extract_text(file)

        result = self.client.submit_for_analysis(file, self.store.jurisdiction)
        self.store.load(text, result, filename=file.filename, file=file)
        self._explanations = {}

        logger.info(
            f"Uploaded contract analyzed: {file.filename}",
            contract_type=result.contract_type,
            clauses=len(self.store.clauses)
        )
        return result

    def reanalyze(self) -> AnalysisResult:
        """Analyze the current (possibly negotiated) document text again.

        The previous analysis and every clause derived from it are replaced.
        """
        if self.store.contract is None:
            raise SessionError("No contract loaded to re-analyze")

        result = self.client.submit_for_analysis(self.store.contract_text, self.store.jurisdiction)
        self.store.set_analysis(result)
        self._explanations = {}

        logger.info("Contract re-analyzed", clauses=len(self.store.clauses))
        return result

    def _require_flag(self, flag_id: str) -> Flag:
        flag = self.store.get_flag(flag_id)
        if flag is None:
            raise InvalidInputError(f"Unknown flag: {flag_id}")
        return flag

    def explain_flag(self, flag_id: str) -> str:
        """Plain-language explanation of one flag, fetched once per analysis."""
        if flag_id in self._explanations:
            return self._explanations[flag_id]

        flag = self._require_flag(flag_id)
        explanation = self.client.explain_risk(flag.analysis, explanation_context(self.store.analysis))
        self._explanations[flag_id] = explanation
        return explanation

    def redline_flag(self, flag_id: str, file: Optional[ContractFile] = None) -> bytes:
        """Redlined .docx for the excerpt a flag quotes.

        The stored upload is used unless ``file`` supplies the .docx again.

        Raises:
            InvalidInputError: No quoted excerpt, or the original Word file is
                not available in this process (it is never persisted)
        """
        flag = self._require_flag(flag_id)
        if not flag.original_text or flag.original_text == NOT_AVAILABLE:
            raise InvalidInputError("This flag does not quote any contract text to redline.")

        file = file or self.store.file
        if file is None:
            raise InvalidInputError("The original document is not available. Please upload the .docx file again.")
        if file.extension not in FileValidator.REDLINE_EXTENSIONS:
            raise InvalidInputError("Redlining requires the contract as a .docx file.")

        return self.client.request_redline(
            file,
            original_text=flag.original_text,
            jurisdiction=self.store.jurisdiction,
            risk_context=flag.analysis,
        )


def create_orchestrator(
    settings: Optional[Settings] = None,
    storage=None,
    session_id: str = "default",
    session=None
) -> ContractReviewOrchestrator:
    """Factory function to create an orchestrator with environment-based configuration.

    Args:
        settings: Optional Settings (loaded from the environment when omitted)
        storage: Optional session storage (SQLite at settings.session_db_path by default)
        session_id: Session whose persisted contract state is restored
        session: Optional requests.Session-compatible object for the client

    Returns:
        Configured ContractReviewOrchestrator instance
    """
    if settings is None:
        settings = load_settings()

    if storage is None:
        storage = SQLiteSessionStorage(
            db_path=settings.session_db_path,
            cleanup_hours=settings.session_cleanup_hours
        )

    store = ContractStore(
        storage=storage,
        session_id=session_id,
        default_jurisdiction=settings.default_jurisdiction
    )
    client = ContractAnalysisClient(settings=settings, session=session)

    return ContractReviewOrchestrator(client=client, store=store)
