"""
Negotiation Stream Reconciler - apply a streamed negotiation turn.

Consumes the newline-delimited event stream of one negotiation turn and keeps
two artifacts up to date:
1. The chat transcript: ``text_delta`` events grow a single agent message
2. The document buffer: ``edit_delta`` events accumulate a complete
   regenerated document which replaces the document view on every delta

States: IDLE -> AWAITING -> STREAMING (mode MESSAGE or EDITING) -> IDLE.
Events are applied strictly in arrival order. Once cancelled, the reconciler
ignores anything still arriving and mutates nothing.
"""

from enum import Enum
from typing import Callable, Iterable, Optional

from copilot.error_handling import CopilotError, user_message
from copilot.logging_config import get_session_logger
from copilot.models import ChatMessage, StreamEvent, TurnOutcome
from negotiation.stream_decoder import EventType, LineDecoder, parse_event
from negotiation.transcript import Transcript


class ReconcilerState(str, Enum):
    IDLE = "idle"
    AWAITING = "awaiting"
    STREAMING = "streaming"


class StreamMode(str, Enum):
    MESSAGE = "message"
    EDITING = "editing"


DOCUMENT_VIEW = "document"


class NegotiationReconciler:
    """State machine turning stream bytes into transcript and document updates."""

    def __init__(
        self,
        transcript: Transcript,
        on_document: Optional[Callable[[str], None]] = None,
        on_view_change: Optional[Callable[[str], None]] = None,
        session_id: str = "default"
    ):
        """Initialize the reconciler.

        Args:
            transcript: Transcript receiving agent text
            on_document: Called with the full document buffer after each edit delta
            on_view_change: Called with the panel to show when an edit starts
            session_id: Session identifier for logging
        """
        self.transcript = transcript
        self.on_document = on_document
        self.on_view_change = on_view_change
        self.log = get_session_logger(session_id, "reconciler")

        self.state = ReconcilerState.IDLE
        self.mode = StreamMode.MESSAGE
        self.edit_buffer = ""
        self.agent_text = ""
        self.strategy: Optional[str] = None
        self.cancelled = False
        self._decoder = LineDecoder()
        self._turn_message: Optional[ChatMessage] = None
        self._outcome = TurnOutcome()

    @property
    def outcome(self) -> TurnOutcome:
        return self._outcome

    def begin(self) -> None:
        """Start a turn: the request is about to be sent."""
        self.state = ReconcilerState.AWAITING
        self.mode = StreamMode.MESSAGE
        self.edit_buffer = ""
        self.agent_text = ""
        self.strategy = None
        self.cancelled = False
        self._decoder = LineDecoder()
        self._turn_message = None
        self._outcome = TurnOutcome()
        self.log.debug("Negotiation turn started")

    def feed(self, chunk: bytes) -> None:
        """Process one raw chunk of the response body."""
        if self.cancelled or self.state == ReconcilerState.IDLE:
            return

        for line in self._decoder.feed(chunk):
            if self.cancelled or self.state == ReconcilerState.IDLE:
                return
            event = parse_event(line)
            if event is not None:
                self.apply(event)

    def apply(self, event: StreamEvent) -> None:
        """Apply one decoded event."""
        if self.cancelled or self.state == ReconcilerState.IDLE:
            return

        if self.state == ReconcilerState.AWAITING:
            self.state = ReconcilerState.STREAMING
            self.mode = StreamMode.MESSAGE

        kind = event.type
        content = event.content or ""

        if kind == EventType.TEXT_DELTA.value:
            self._append_agent_text(content)
        elif kind == EventType.EDIT_START.value:
            self.mode = StreamMode.EDITING
            self.edit_buffer = ""
            if self.on_view_change is not None:
                self.on_view_change(DOCUMENT_VIEW)
            self.log.debug("Edit phase started")
        elif kind == EventType.EDIT_DELTA.value:
            if self.mode != StreamMode.EDITING:
                self.log.warning("edit_delta received outside an edit phase, ignoring")
                return
            self.edit_buffer += content
            self._outcome.edited = True
            if self.on_document is not None:
                self.on_document(self.edit_buffer)
        elif kind == EventType.STRATEGY.value:
            self.strategy = content
            self.log.debug("Strategy event received", length=len(content))
        elif kind == EventType.DONE.value:
            self._outcome.completed = True
            self._finish()
        else:
            self.log.debug(f"Ignoring unknown stream event type: {kind}")

    def _append_agent_text(self, content: str) -> None:
        self.agent_text += content
        if self._turn_message is not None and self.transcript.last is self._turn_message:
            self._turn_message.text = self.agent_text
        else:
            self._turn_message = self.transcript.append("agent", self.agent_text)

    def end_of_stream(self) -> None:
        """The response body ended. Parses any unterminated final line."""
        if self.cancelled or self.state == ReconcilerState.IDLE:
            return

        for line in self._decoder.flush():
            event = parse_event(line)
            if event is not None:
                self.apply(event)

        if self.state != ReconcilerState.IDLE:
            self.log.warning("Negotiation stream ended without a done event")
            self._finish()

    def fail(self, error: BaseException) -> None:
        """Report a transport failure inline and return to IDLE.

        Document edits already applied are kept.
        """
        if self.cancelled:
            return

        message = user_message(error)
        self.transcript.append("agent", message)
        self._outcome.error = message
        self.log.error(f"Negotiation stream failed: {error}", error_type=type(error).__name__)
        self._finish()

    def cancel(self) -> None:
        """Stop applying events. Safe to call at any time, more than once."""
        if self.cancelled:
            return
        self.cancelled = True
        self._outcome.cancelled = True
        self.state = ReconcilerState.IDLE
        self.mode = StreamMode.MESSAGE
        self.log.info("Negotiation turn cancelled")

    def _finish(self) -> None:
        self.state = ReconcilerState.IDLE
        self.mode = StreamMode.MESSAGE
        self.log.debug(
            "Negotiation turn finished",
            completed=self._outcome.completed,
            edited=self._outcome.edited
        )

    def consume(self, chunks: Iterable[bytes]) -> TurnOutcome:
        """Drive the reconciler over a chunk source until done, EOF, error or cancel.

        Typed transport errors raised while reading are reported through
        :meth:`fail`; they do not propagate.
        """
        if self.state == ReconcilerState.IDLE and not self.cancelled:
            self.begin()

        try:
            for chunk in chunks:
                if self.cancelled:
                    break
                self.feed(chunk)
                if self.state == ReconcilerState.IDLE:
                    break
            else:
                self.end_of_stream()
        except CopilotError as e:
            self.fail(e)

        return self._outcome
