"""Negotiation package: stream decoding, reconciliation and the workspace."""

from negotiation.stream_decoder import EventType, LineDecoder, parse_event
from negotiation.transcript import Transcript
from negotiation.reconciler import NegotiationReconciler, ReconcilerState, StreamMode
from negotiation.workspace import NegotiationWorkspace

__all__ = [
    "EventType",
    "LineDecoder",
    "parse_event",
    "Transcript",
    "NegotiationReconciler",
    "ReconcilerState",
    "StreamMode",
    "NegotiationWorkspace",
]
