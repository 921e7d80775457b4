"""Transport client for the contract analysis service."""

from client.api_client import (
    ContractAnalysisClient,
    NegotiationStream,
    parse_analysis_payload,
    extract_error_message,
)

__all__ = [
    "ContractAnalysisClient",
    "NegotiationStream",
    "parse_analysis_payload",
    "extract_error_message",
]
