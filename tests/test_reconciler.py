import msgspec

from copilot.error_handling import NetworkUnreachableError, RequestTimeoutError
from negotiation.reconciler import NegotiationReconciler, ReconcilerState, StreamMode
from negotiation.transcript import Transcript
from tests.conftest import ndjson


def make_reconciler(transcript=None):
    documents = []
    views = []
    reconciler = NegotiationReconciler(
        transcript if transcript is not None else Transcript(),
        on_document=documents.append,
        on_view_change=views.append,
    )
    return reconciler, documents, views


def test_text_then_edit_then_done():
    reconciler, documents, views = make_reconciler()
    body = ndjson(
        {"type": "text_delta", "content": "A"},
        {"type": "text_delta", "content": "B"},
        {"type": "edit_start"},
        {"type": "edit_delta", "content": "X"},
        {"type": "edit_delta", "content": "Y"},
        {"type": "done"},
    )

    outcome = reconciler.consume([body])

    messages = reconciler.transcript.messages
    assert messages[-1].role == "agent"
    assert messages[-1].text == "AB"
    assert len([m for m in messages if m.role == "agent"]) == 1
    assert documents == ["X", "XY"]
    assert views == ["document"]
    assert reconciler.state == ReconcilerState.IDLE
    assert outcome.completed and outcome.edited
    assert outcome.error is None


def test_line_split_at_arbitrary_offset_yields_one_message():
    body = b'{"type":"text_delta","content":"Hel"}\n{"type":"text_delta","content":"lo"}\n'

    for offset in range(1, len(body)):
        reconciler, _, _ = make_reconciler()
        reconciler.consume([body[:offset], body[offset:]])

        agent = [m for m in reconciler.transcript if m.role == "agent"]
        assert [m.text for m in agent] == ["Hello"]


def test_repeated_edit_start_resets_buffer():
    reconciler, documents, _ = make_reconciler()
    reconciler.consume([ndjson(
        {"type": "edit_start"},
        {"type": "edit_delta", "content": "first draft"},
        {"type": "edit_start"},
        {"type": "edit_delta", "content": "second"},
        {"type": "done"},
    )])

    assert reconciler.edit_buffer == "second"
    assert documents[-1] == "second"


def test_malformed_lines_are_skipped():
    reconciler, _, _ = make_reconciler()
    body = (
        b'{"type":"text_delta","content":"ok"}\n'
        b"this is not json\n"
        b"\n"
        b'{"type":"text_delta","content":" still ok"}\n'
        b'{"type":"done"}\n'
    )

    outcome = reconciler.consume([body])

    assert reconciler.transcript.last.text == "ok still ok"
    assert outcome.completed


def test_edit_delta_outside_edit_phase_is_ignored():
    reconciler, documents, _ = make_reconciler()
    outcome = reconciler.consume([ndjson(
        {"type": "edit_delta", "content": "stray"},
        {"type": "done"},
    )])

    assert documents == []
    assert not outcome.edited


def test_strategy_event_is_recorded_without_transcript_change():
    reconciler, _, _ = make_reconciler()
    reconciler.consume([ndjson(
        {"type": "strategy", "content": "Push for a liability cap"},
        {"type": "done"},
    )])

    assert reconciler.strategy == "Push for a liability cap"
    assert len(reconciler.transcript) == 0


def test_transport_failure_leaves_single_error_message():
    def chunks():
        yield ndjson({"type": "edit_start"}, {"type": "edit_delta", "content": "partial"})
        raise NetworkUnreachableError("connection reset")

    reconciler, documents, _ = make_reconciler()
    outcome = reconciler.consume(chunks())

    agent = [m for m in reconciler.transcript if m.role == "agent"]
    assert len(agent) == 1
    assert agent[0].text == "Network connection error. Please check your internet connection and try again."
    assert documents == ["partial"]
    assert outcome.edited and not outcome.completed
    assert reconciler.state == ReconcilerState.IDLE
    assert reconciler.mode == StreamMode.MESSAGE


def test_read_timeout_reports_timeout_message():
    def chunks():
        raise RequestTimeoutError("stalled", timeout=120)
        yield b""

    reconciler, _, _ = make_reconciler()
    outcome = reconciler.consume(chunks())

    assert outcome.error == "The request timed out. Please try again."


def test_cancellation_stops_all_mutation():
    reconciler, documents, _ = make_reconciler()
    reconciler.begin()
    reconciler.feed(ndjson({"type": "text_delta", "content": "Before"}))

    reconciler.cancel()
    reconciler.feed(ndjson(
        {"type": "text_delta", "content": " after"},
        {"type": "edit_start"},
        {"type": "edit_delta", "content": "late"},
    ))
    reconciler.fail(NetworkUnreachableError("late failure"))
    reconciler.end_of_stream()

    assert [m.text for m in reconciler.transcript] == ["Before"]
    assert documents == []
    assert reconciler.outcome.cancelled
    assert not reconciler.outcome.completed


def test_end_of_stream_without_done_is_incomplete():
    reconciler, _, _ = make_reconciler()
    outcome = reconciler.consume([b'{"type":"text_delta","content":"partial answer"}'])

    assert reconciler.transcript.last.text == "partial answer"
    assert not outcome.completed
    assert outcome.error is None
    assert reconciler.state == ReconcilerState.IDLE


def test_text_after_user_message_starts_new_agent_message():
    transcript = Transcript()
    reconciler, _, _ = make_reconciler(transcript)
    reconciler.consume([ndjson({"type": "text_delta", "content": "first"}, {"type": "done"})])

    transcript.append("user", "and now?")
    reconciler.consume([ndjson({"type": "text_delta", "content": "second"}, {"type": "done"})])

    assert [(m.role, m.text) for m in transcript] == [
        ("agent", "first"),
        ("user", "and now?"),
        ("agent", "second"),
    ]


def test_history_serializes_role_and_content():
    transcript = Transcript()
    transcript.append("user", "hi")
    transcript.append("agent", "hello")

    encoded = msgspec.json.decode(msgspec.json.encode(transcript.to_history()))
    assert encoded == [{"role": "user", "content": "hi"}, {"role": "agent", "content": "hello"}]
