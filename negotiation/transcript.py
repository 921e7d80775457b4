"""Chat transcript for a negotiation session."""

from typing import Iterator, List, Optional

from copilot.models import ChatMessage, HistoryEntry


class Transcript:
    """Append-only list of chat messages.

    The only in-place mutation is the reconciler growing the agent message of
    the current turn, and the removal of clause selection announcements.
    """

    def __init__(self, messages: Optional[List[ChatMessage]] = None):
        self._messages: List[ChatMessage] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(list(self._messages))

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def last(self) -> Optional[ChatMessage]:
        return self._messages[-1] if self._messages else None

    def append(self, role: str, text: str) -> ChatMessage:
        message = ChatMessage(role=role, text=text)
        self._messages.append(message)
        return message

    def remove_message(self, message: ChatMessage) -> bool:
        """Remove one message by identity."""
        for index, existing in enumerate(self._messages):
            if existing is message:
                del self._messages[index]
                return True
        return False

    def to_history(self) -> List[HistoryEntry]:
        return [HistoryEntry(role=m.role, content=m.text) for m in self._messages]

    def clear(self) -> None:
        self._messages = []
