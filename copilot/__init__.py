"""LegalSay Contract Copilot - client core package."""

from copilot.models import (
    ContractFile,
    Contract,
    KeyDetail,
    AnalysisResult,
    Flag,
    Clause,
    ChatMessage,
    NegotiationRequest,
    StreamEvent,
    TurnOutcome,
    PersistedContractState,
)

from copilot.logging_config import (
    setup_logging,
    get_session_logger,
    log_client_call,
)

from copilot.error_handling import (
    CopilotError,
    InvalidInputError,
    SessionError,
    EmptyExtractionError,
    TransportError,
    RequestTimeoutError,
    ServerError,
    NetworkUnreachableError,
    MalformedResponseError,
    handle_transport_errors,
    user_message,
)

from copilot.config import Settings, load_settings, JURISDICTIONS, DEFAULT_JURISDICTION

__version__ = "0.1.0"

__all__ = [
    # Models
    "ContractFile",
    "Contract",
    "KeyDetail",
    "AnalysisResult",
    "Flag",
    "Clause",
    "ChatMessage",
    "NegotiationRequest",
    "StreamEvent",
    "TurnOutcome",
    "PersistedContractState",
    # Logging
    "setup_logging",
    "get_session_logger",
    "log_client_call",
    # Error Handling
    "CopilotError",
    "InvalidInputError",
    "SessionError",
    "EmptyExtractionError",
    "TransportError",
    "RequestTimeoutError",
    "ServerError",
    "NetworkUnreachableError",
    "MalformedResponseError",
    "handle_transport_errors",
    "user_message",
    # Configuration
    "Settings",
    "load_settings",
    "JURISDICTIONS",
    "DEFAULT_JURISDICTION",
]
