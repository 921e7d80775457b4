import msgspec
import pytest
import requests

from client.api_client import (
    ANALYZE_PATH,
    NEGOTIATE_PATH,
    ContractAnalysisClient,
    extract_error_message,
    parse_analysis_payload,
)
from copilot.error_handling import (
    EmptyExtractionError,
    InvalidInputError,
    MalformedResponseError,
    NetworkUnreachableError,
    RequestTimeoutError,
    ServerError,
    user_message,
)
from copilot.models import ContractFile, NegotiationRequest
from tests.conftest import SAMPLE_ANALYSIS, FakeResponse, FakeSession, json_response, ndjson


class FakeClock:
    """Replaces the client module's clock; each reading advances by ``step``."""

    def __init__(self, now=1000.0, step=0.0):
        self.now = now
        self.step = step

    def monotonic(self):
        value = self.now
        self.now += self.step
        return value


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr("client.api_client.time", fake)
    return fake


MIB = 1024 * 1024


def make_client(settings, *responses):
    session = FakeSession(*responses)
    return ContractAnalysisClient(settings=settings, session=session), session


def test_double_encoded_analysis_matches_direct_form():
    direct = parse_analysis_payload({"analysis": SAMPLE_ANALYSIS})
    double = parse_analysis_payload({"analysis": msgspec.json.encode(SAMPLE_ANALYSIS).decode()})

    assert direct == double
    assert direct.contract_type == "Non-Disclosure Agreement"
    assert direct.summary == "A one-sided NDA favoring the disclosing party."
    assert direct.health_score == 58


def test_submit_text_sends_multipart_fields(settings):
    client, session = make_client(settings, json_response({"analysis": SAMPLE_ANALYSIS}))

    result = client.submit_for_analysis("The parties agree...", "California")

    url, kwargs = session.calls[0]
    assert url == "http://legalsay.test" + ANALYZE_PATH
    assert kwargs["files"]["text"] == (None, "The parties agree...")
    assert kwargs["files"]["jurisdiction"] == (None, "California")
    assert result.contract_type == "Non-Disclosure Agreement"


def test_blank_jurisdiction_falls_back_to_default(settings):
    client, session = make_client(settings, json_response({"analysis": SAMPLE_ANALYSIS}))

    client.submit_for_analysis("Some contract", "  ")

    assert session.calls[0][1]["files"]["jurisdiction"] == (None, "United States (General)")


def test_blank_text_is_rejected_without_request(settings):
    client, session = make_client(settings)

    with pytest.raises(InvalidInputError):
        client.submit_for_analysis("   \n")
    assert session.calls == []


def test_file_of_exactly_max_size_is_accepted(settings):
    client, session = make_client(settings, json_response({"analysis": SAMPLE_ANALYSIS}))
    file = ContractFile(filename="big.pdf", content=b"x" * (10 * MIB), mime_type="application/pdf")

    client.submit_for_analysis(file)

    assert len(session.calls) == 1
    assert session.calls[0][1]["files"]["file"][0] == "big.pdf"


def test_file_one_byte_over_max_size_is_rejected_without_request(settings):
    client, session = make_client(settings)
    file = ContractFile(filename="big.pdf", content=b"x" * (10 * MIB + 1))

    with pytest.raises(InvalidInputError):
        client.submit_for_analysis(file)
    assert session.calls == []


def test_empty_file_is_rejected(settings):
    client, session = make_client(settings)

    with pytest.raises(InvalidInputError):
        client.extract_text(ContractFile(filename="empty.docx", content=b""))
    assert session.calls == []


def test_connect_timeout_maps_to_timeout_error(settings):
    client, _ = make_client(settings, requests.ConnectTimeout("connect timed out"))

    with pytest.raises(RequestTimeoutError) as excinfo:
        client.submit_for_analysis("Some contract")
    assert user_message(excinfo.value) == "The request timed out. Please try again."


def test_read_timeout_while_reading_body(settings):
    response = FakeResponse(chunks=[b'{"analy'], error=requests.ConnectionError("Read timed out."))
    client, _ = make_client(settings, response)

    with pytest.raises(RequestTimeoutError):
        client.submit_for_analysis("Some contract")
    assert response.closed


class DrippingResponse(FakeResponse):
    """Delivers each chunk ``delay`` seconds after the previous one."""

    def __init__(self, clock, delay, chunks):
        super().__init__(chunks=chunks)
        self.clock = clock
        self.delay = delay

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            self.clock.now += self.delay
            yield chunk


def test_deadline_passes_while_body_is_still_arriving(settings, clock):
    # Every chunk arrives well within the read timeout, but together they exceed 60s
    response = DrippingResponse(clock, 25.0, [b'{"analysis": ', b'{}', b"}"])
    client, _ = make_client(settings, response)

    with pytest.raises(RequestTimeoutError) as excinfo:
        client.submit_for_analysis("Some contract")

    assert excinfo.value.timeout == settings.analyze_timeout
    assert response.closed


class SlowHeadersSession(FakeSession):
    def __init__(self, clock, delay, *responses):
        super().__init__(*responses)
        self.clock = clock
        self.delay = delay

    def post(self, url, **kwargs):
        self.clock.now += self.delay
        return super().post(url, **kwargs)


def test_deadline_passes_before_headers_arrive(settings, clock):
    response = json_response({"explanation": "late"})
    session = SlowHeadersSession(clock, 31.0, response)
    client = ContractAnalysisClient(settings=settings, session=session)

    with pytest.raises(RequestTimeoutError):
        client.explain_risk("Unlimited liability")
    assert response.closed


def test_explain_risk_uses_explain_timeout(settings, clock):
    client, session = make_client(settings, json_response({"explanation": "ok"}))

    client.explain_risk("Unlimited liability")

    assert session.calls[0][1]["timeout"] == (settings.connect_timeout, settings.explain_timeout)
    assert settings.explain_timeout == 30.0


def test_analysis_uses_analyze_timeout(settings, clock):
    client, session = make_client(settings, json_response({"analysis": SAMPLE_ANALYSIS}))

    client.submit_for_analysis("Some contract")

    assert session.calls[0][1]["timeout"] == (10.0, 60.0)


def test_read_timeout_is_time_left_before_deadline(settings, clock):
    clock.step = 1.0
    client, session = make_client(settings, json_response({"explanation": "ok"}))

    client.explain_risk("Unlimited liability")

    # One clock reading sets the deadline, the next sizes the read timeout
    assert session.calls[0][1]["timeout"] == (10.0, 29.0)


def test_connection_failure_maps_to_network_error(settings):
    client, _ = make_client(settings, requests.ConnectionError("Name or service not known"))

    with pytest.raises(NetworkUnreachableError) as excinfo:
        client.explain_risk("Unlimited liability")
    assert "Network connection error" in user_message(excinfo.value)


def test_server_error_carries_status_and_detail(settings):
    client, _ = make_client(settings, json_response({"detail": "model overloaded"}, status_code=500))

    with pytest.raises(ServerError) as excinfo:
        client.submit_for_analysis("Some contract")

    assert excinfo.value.status == 500
    assert excinfo.value.message == "model overloaded"
    assert user_message(excinfo.value) == "Server error occurred. Please try again later."


def test_other_status_shows_backend_message(settings):
    client, _ = make_client(settings, json_response({"error": "unsupported format"}, status_code=422))

    with pytest.raises(ServerError) as excinfo:
        client.submit_for_analysis("Some contract")
    assert user_message(excinfo.value) == "The analysis service returned an error: unsupported format"


def test_extract_error_message_fallbacks():
    assert extract_error_message(502, b"Bad gateway from proxy") == "Bad gateway from proxy"
    assert extract_error_message(503, b"") == "Service temporarily unavailable"
    assert extract_error_message(404, b'{"other": 1}') == "The requested resource was not found"


@pytest.mark.parametrize("body", [
    b"<html>not json</html>",
    b'{"result": {}}',
    b'{"analysis": 5}',
    b'{"analysis": "{broken"}',
    b'{"analysis": {"red_flags": "not a list"}}',
])
def test_malformed_analysis_responses(settings, body):
    client, _ = make_client(settings, FakeResponse(body=body))

    with pytest.raises(MalformedResponseError):
        client.submit_for_analysis("Some contract")


def test_explain_risk_sends_json_body(settings):
    client, session = make_client(settings, json_response({"explanation": "You could owe everything."}))

    explanation = client.explain_risk("Unlimited liability", "Contract Type: NDA. Summary: short")

    body = msgspec.json.decode(session.calls[0][1]["data"])
    assert body == {"risk_text": "Unlimited liability", "contract_context": "Contract Type: NDA. Summary: short"}
    assert explanation == "You could owe everything."


def test_blank_extraction_raises_empty_extraction(settings):
    client, _ = make_client(settings, json_response({"text": "  \n\t "}))
    file = ContractFile(filename="scan.pdf", content=b"%PDF-1.4")

    with pytest.raises(EmptyExtractionError):
        client.extract_text(file)


def test_redline_requires_docx(settings):
    client, session = make_client(settings)

    with pytest.raises(InvalidInputError):
        client.request_redline(ContractFile(filename="nda.pdf", content=b"%PDF"), "clause text")
    assert session.calls == []


def test_redline_returns_binary_document(settings):
    client, session = make_client(settings, FakeResponse(body=b"PK\x03\x04docx-bytes"))
    file = ContractFile(filename="nda.docx", content=b"PK\x03\x04original")

    document = client.request_redline(file, "shall be liable", "Delaware", "Unlimited liability")

    files = session.calls[0][1]["files"]
    assert files["original_text"] == (None, "shall be liable")
    assert files["risk_context"] == (None, "Unlimited liability")
    assert document == b"PK\x03\x04docx-bytes"


def test_negotiation_stream_yields_chunks(settings):
    body = ndjson({"type": "text_delta", "content": "Hi"}, {"type": "done"})
    client, session = make_client(settings, FakeResponse(chunks=[body[:10], body[10:]]))
    request = NegotiationRequest(message="Improve this", contract_context="text", jurisdiction="Delaware")

    with client.open_negotiation_stream(request) as stream:
        assert b"".join(stream.chunks()) == body

    url, kwargs = session.calls[0]
    assert url.endswith(NEGOTIATE_PATH)
    assert kwargs["stream"] is True
    sent = msgspec.json.decode(kwargs["data"])
    assert sent["message"] == "Improve this"
    assert sent["history"] == []


def test_negotiation_stream_error_status(settings):
    client, _ = make_client(settings, json_response({"detail": "Not Found"}, status_code=404))
    request = NegotiationRequest(message="Hi", contract_context="text", jurisdiction="Delaware")

    with pytest.raises(ServerError) as excinfo:
        client.open_negotiation_stream(request)
    assert excinfo.value.status == 404


def test_negotiation_stream_read_failure_is_typed(settings):
    response = FakeResponse(chunks=[b'{"type":'], error=requests.exceptions.ChunkedEncodingError("reset"))
    client, _ = make_client(settings, response)
    request = NegotiationRequest(message="Hi", contract_context="text", jurisdiction="Delaware")

    stream = client.open_negotiation_stream(request)
    with pytest.raises(NetworkUnreachableError):
        list(stream.chunks())
