"""HTTP client for the LegalSay contract analysis service.

Wraps each endpoint with input validation, a wall-clock deadline and error
classification. Callers only ever see the typed errors from
``copilot.error_handling``; ``requests`` exceptions never escape.
"""

import time
from typing import Any, Iterator, Optional, Union

import msgspec
import requests
from loguru import logger

from copilot.config import Settings, load_settings
from copilot.error_handling import (
    InvalidInputError,
    EmptyExtractionError,
    MalformedResponseError,
    RequestTimeoutError,
    ServerError,
    classify_request_exception,
    generic_status_message,
    handle_transport_errors,
)
from copilot.logging_config import log_client_call
from copilot.models import AnalysisResult, ContractFile, NegotiationRequest
from tools.text_normalizer import FileValidator


ANALYZE_PATH = "/analyze_contract/"
EXPLAIN_PATH = "/explain_risk/"
REDLINE_PATH = "/redline_clause/"
EXTRACT_PATH = "/extract_text/"
NEGOTIATE_PATH = "/negotiate/chat/"

USER_AGENT = "legalsay-copilot/0.1.0"
READ_CHUNK_SIZE = 64 * 1024
ERROR_BODY_LIMIT = 500
MIN_READ_TIMEOUT = 0.1


def decode_json_body(body: bytes, endpoint: str) -> Any:
    try:
        return msgspec.json.decode(body)
    except msgspec.DecodeError as e:
        raise MalformedResponseError(f"{endpoint} returned invalid JSON: {e}") from e


def parse_analysis_payload(payload: Any) -> AnalysisResult:
    """Turn an /analyze_contract/ response into an AnalysisResult.

    The backend returns ``{"analysis": {...}}`` or ``{"analysis": "<json>"}``;
    a string is parsed a second time. Anything that does not end up as an
    analysis object raises MalformedResponseError.
    """
    if not isinstance(payload, dict) or "analysis" not in payload:
        raise MalformedResponseError("Analysis response has no 'analysis' field")

    analysis = payload["analysis"]
    if isinstance(analysis, str):
        try:
            analysis = msgspec.json.decode(analysis)
        except msgspec.DecodeError as e:
            raise MalformedResponseError(f"Embedded analysis JSON is invalid: {e}") from e

    if not isinstance(analysis, dict):
        raise MalformedResponseError(
            f"Analysis must be an object, got {type(analysis).__name__}"
        )

    try:
        return msgspec.convert(analysis, AnalysisResult)
    except msgspec.ValidationError as e:
        raise MalformedResponseError(f"Analysis does not match the expected shape: {e}") from e


def extract_error_message(status: int, body: bytes) -> str:
    """Best available message for a non-2xx response."""
    text = body.decode("utf-8", errors="replace").strip()
    if not text:
        return generic_status_message(status)

    try:
        data = msgspec.json.decode(text)
    except msgspec.DecodeError:
        return text[:ERROR_BODY_LIMIT]

    if isinstance(data, dict):
        for key in ("detail", "error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()[:ERROR_BODY_LIMIT]
            if value:
                return str(value)[:ERROR_BODY_LIMIT]

    return generic_status_message(status)


def _is_read_timeout(error: requests.RequestException) -> bool:
    # requests reports streamed read timeouts as ConnectionError
    return isinstance(error, requests.Timeout) or "timed out" in str(error).lower()


class NegotiationStream:
    """Open streaming response from /negotiate/chat/.

    Yields raw byte chunks as they arrive; line reassembly and event parsing
    belong to the reconciler.
    """

    def __init__(self, response, read_timeout: float):
        self._response = response
        self.read_timeout = read_timeout
        self.closed = False

    def chunks(self) -> Iterator[bytes]:
        try:
            for chunk in self._response.iter_content(chunk_size=None):
                if self.closed:
                    return
                if chunk:
                    yield chunk
        except Exception as e:
            # Reading a response closed under us fails in various ways
            if self.closed:
                return
            if not isinstance(e, requests.RequestException):
                raise
            if _is_read_timeout(e):
                raise RequestTimeoutError(
                    f"No data from negotiation stream for {self.read_timeout}s",
                    timeout=self.read_timeout
                ) from e
            raise classify_request_exception(e) from e

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._response.close()

    def __enter__(self) -> "NegotiationStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ContractAnalysisClient:
    """Client for the contract analysis service endpoints."""

    def __init__(self, settings: Optional[Settings] = None, session=None):
        """Initialize the client.

        Args:
            settings: Resolved settings (loaded from the environment when omitted)
            session: requests.Session-compatible object, mainly for tests
        """
        self.settings = settings or load_settings()
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.session = session if session is not None else requests.Session()
        self.validator = FileValidator(max_size_mb=self.settings.max_upload_mb)

        if hasattr(self.session, "headers"):
            self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

        logger.info(f"ContractAnalysisClient initialized for {self.base_url}")

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _post(self, path: str, timeout: float, **kwargs) -> bytes:
        """POST and read the whole body within ``timeout`` seconds of wall-clock time.

        Raises:
            RequestTimeoutError: Deadline passed before the body was complete
            ServerError: Non-2xx status
        """
        deadline = time.monotonic() + timeout
        connect_timeout = min(self.settings.connect_timeout, timeout)
        # A single socket read never outlasts the time left when the request is sent
        read_timeout = max(deadline - time.monotonic(), MIN_READ_TIMEOUT)

        try:
            response = self.session.post(
                self._url(path),
                timeout=(connect_timeout, read_timeout),
                stream=True,
                **kwargs
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(f"{path} timed out after {timeout}s", timeout=timeout) from e

        try:
            if time.monotonic() > deadline:
                raise RequestTimeoutError(f"{path} timed out after {timeout}s", timeout=timeout)
            body = self._read_body(response, deadline, timeout, path)
        finally:
            response.close()

        if not 200 <= response.status_code < 300:
            message = extract_error_message(response.status_code, body)
            logger.warning(f"{path} returned {response.status_code}: {message}")
            raise ServerError(response.status_code, message)

        return body

    def _read_body(self, response, deadline: float, timeout: float, path: str) -> bytes:
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=READ_CHUNK_SIZE):
                if time.monotonic() > deadline:
                    raise RequestTimeoutError(f"{path} timed out after {timeout}s", timeout=timeout)
                chunks.append(chunk)
        except requests.RequestException as e:
            if _is_read_timeout(e) or time.monotonic() >= deadline:
                raise RequestTimeoutError(f"{path} timed out after {timeout}s", timeout=timeout) from e
            raise
        return b"".join(chunks)

    def _jurisdiction(self, jurisdiction: Optional[str]) -> str:
        return (jurisdiction or "").strip() or self.settings.default_jurisdiction

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    @log_client_call(ANALYZE_PATH)
    @handle_transport_errors(ANALYZE_PATH)
    def submit_for_analysis(
        self,
        source: Union[str, ContractFile],
        jurisdiction: Optional[str] = None
    ) -> AnalysisResult:
        """Send a contract for risk analysis.

        Args:
            source: Plain contract text or an uploaded file
            jurisdiction: Governing jurisdiction (default from settings)

        Returns:
            Parsed AnalysisResult

        Raises:
            InvalidInputError: Blank text, empty or oversized file
            RequestTimeoutError, ServerError, NetworkUnreachableError,
            MalformedResponseError: Service failures
        """
        jurisdiction = self._jurisdiction(jurisdiction)

        if isinstance(source, ContractFile):
            self.validator.validate(source)
            files = {
                "file": (source.filename, source.content, source.mime_type),
                "jurisdiction": (None, jurisdiction),
            }
        else:
            if not source or not source.strip():
                raise InvalidInputError("Please enter some text to analyze.")
            files = {
                "text": (None, source),
                "jurisdiction": (None, jurisdiction),
            }

        body = self._post(ANALYZE_PATH, self.settings.analyze_timeout, files=files)
        return parse_analysis_payload(decode_json_body(body, ANALYZE_PATH))

    @log_client_call(EXPLAIN_PATH)
    @handle_transport_errors(EXPLAIN_PATH)
    def explain_risk(self, risk_text: str, context: str = "") -> str:
        """Ask the service to explain one flagged risk in plain language."""
        if not risk_text or not risk_text.strip():
            raise InvalidInputError("Risk text is required for an explanation.")

        body = self._post(
            EXPLAIN_PATH,
            self.settings.explain_timeout,
            data=msgspec.json.encode({"risk_text": risk_text, "contract_context": context}),
            headers={"Content-Type": "application/json"},
        )
        data = decode_json_body(body, EXPLAIN_PATH)

        explanation = data.get("explanation") if isinstance(data, dict) else None
        if not isinstance(explanation, str):
            raise MalformedResponseError("Explanation response has no 'explanation' text")
        return explanation

    @log_client_call(EXTRACT_PATH)
    @handle_transport_errors(EXTRACT_PATH)
    def extract_text(self, file: ContractFile) -> str:
        """Extract plain text from an uploaded document.

        Raises:
            InvalidInputError: Empty or oversized file
            EmptyExtractionError: The service returned only whitespace
        """
        self.validator.validate(file)

        body = self._post(
            EXTRACT_PATH,
            self.settings.extract_timeout,
            files={"file": (file.filename, file.content, file.mime_type)},
        )
        data = decode_json_body(body, EXTRACT_PATH)

        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise MalformedResponseError("Extraction response has no 'text' field")
        if not text.strip():
            raise EmptyExtractionError(f"No text could be extracted from {file.filename}")
        return text

    @log_client_call(REDLINE_PATH)
    @handle_transport_errors(REDLINE_PATH)
    def request_redline(
        self,
        file: ContractFile,
        original_text: str,
        jurisdiction: Optional[str] = None,
        risk_context: str = ""
    ) -> bytes:
        """Request a redlined Word document for one clause.

        Returns:
            The binary .docx returned by the service
        """
        self.validator.validate(file, FileValidator.REDLINE_EXTENSIONS)

        return self._post(
            REDLINE_PATH,
            self.settings.redline_timeout,
            files={
                "file": (file.filename, file.content, file.mime_type),
                "original_text": (None, original_text),
                "jurisdiction": (None, self._jurisdiction(jurisdiction)),
                "risk_context": (None, risk_context),
            },
        )

    @handle_transport_errors(NEGOTIATE_PATH)
    def open_negotiation_stream(self, request: NegotiationRequest) -> NegotiationStream:
        """Open the streaming negotiation response.

        Only the connection and status are checked here; the body is handed
        back unread as a NegotiationStream.
        """
        read_timeout = self.settings.stream_read_timeout
        logger.info(
            "Opening negotiation stream",
            history_length=len(request.history),
            has_selection=bool(request.selected_clause)
        )

        try:
            response = self.session.post(
                self._url(NEGOTIATE_PATH),
                data=msgspec.json.encode(request),
                headers={"Content-Type": "application/json", "Accept": "application/x-ndjson"},
                timeout=(self.settings.connect_timeout, read_timeout),
                stream=True,
            )
        except requests.Timeout as e:
            raise RequestTimeoutError("Negotiation service did not respond", timeout=read_timeout) from e

        if not 200 <= response.status_code < 300:
            try:
                body = self._read_body(
                    response, time.monotonic() + read_timeout, read_timeout, NEGOTIATE_PATH
                )
            finally:
                response.close()
            raise ServerError(response.status_code, extract_error_message(response.status_code, body))

        return NegotiationStream(response, read_timeout)
