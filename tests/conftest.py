import msgspec
import pytest

from copilot.config import Settings
from copilot.models import AnalysisResult
from memory.contract_store import ContractStore
from memory.session_service import InMemorySessionStorage


SAMPLE_ANALYSIS = {
    "contract_type": "Non-Disclosure Agreement",
    "key_details": [{"label": "Parties", "value": "Acme Corp and Beta LLC"}],
    "red_flags": [
        {
            "analysis": "Unlimited liability: the receiving party is liable for all losses.",
            "original_text": "shall be liable for all losses",
        },
        "Perpetual term: confidentiality obligations never expire.",
    ],
    "yellow_flags": [
        {
            "analysis": "Late payment: invoices are due quickly.",
            "original_text": "pay within 30 days",
        },
    ],
    "green_flags": ["Mutual obligations: both parties are bound equally."],
    "plain_english_summary": "A one-sided NDA favoring the disclosing party.",
    "total_health_score": 58,
}

SAMPLE_CONTRACT = (
    "The Recipient shall be liable for all losses arising from disclosure.\n\n"
    "The Customer shall pay within   30\ndays of receiving an invoice."
)


class FakeResponse:
    """Stand-in for requests.Response supporting the streaming calls the client makes."""

    def __init__(self, status_code=200, body=b"", chunks=None, error=None):
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"
        self.headers = {}
        self._chunks = list(chunks) if chunks is not None else ([body] if body else [])
        self._error = error
        self.closed = False

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            if self.closed:
                return
            yield chunk
        if self._error is not None:
            raise self._error

    def close(self):
        self.closed = True


def json_response(payload, status_code=200):
    return FakeResponse(status_code=status_code, body=msgspec.json.encode(payload))


def ndjson(*events):
    return b"".join(msgspec.json.encode(event) + b"\n" for event in events)


class FakeSession:
    """Records every post and replays queued responses or exceptions in order."""

    def __init__(self, *responses):
        self.headers = {}
        self.calls = []
        self._responses = list(responses)

    def queue(self, response):
        self._responses.append(response)

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if not self._responses:
            raise AssertionError(f"Unexpected request to {url}")
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def settings():
    return Settings(api_base_url="http://legalsay.test", session_db_path=":memory:")


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def analysis():
    return msgspec.convert(SAMPLE_ANALYSIS, AnalysisResult)


@pytest.fixture
def storage():
    return InMemorySessionStorage()


@pytest.fixture
def loaded_store(storage, analysis):
    store = ContractStore(storage=storage, session_id="test-session")
    store.load(SAMPLE_CONTRACT, analysis, filename="nda.txt")
    return store
