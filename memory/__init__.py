"""Memory package for session storage and contract state."""

from memory.session_service import InMemorySessionStorage, SQLiteSessionStorage
from memory.contract_store import ContractStore, STORAGE_KEY

__all__ = [
    "InMemorySessionStorage",
    "SQLiteSessionStorage",
    "ContractStore",
    "STORAGE_KEY",
]
