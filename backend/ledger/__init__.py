"""
Ledger clients package.

Read-only accessors for the supply-chain ledger:
  - JSON gateway in front of the contract   (HttpLedgerClient)
  - In-process append-only ledger           (InMemoryLedger, tests and demos)

Usage:
    from ledger import LedgerBackend, get_ledger_client

    client = get_ledger_client(LedgerBackend.HTTP, {"base_url": "http://gateway:8545"})
    count = await client.get_count()
"""

from ledger.base import (
    ConnectivityFailure,
    DecodeFailure,
    LedgerBackend,
    LedgerClient,
    LedgerError,
    ParticipantCounts,
    Record,
    RecordNotFound,
    build_ledger_client,
    get_ledger_client,
    register_ledger,
)
from ledger.gateway import HttpLedgerClient
from ledger.memory import InMemoryLedger

__all__ = [
    "ConnectivityFailure",
    "DecodeFailure",
    "LedgerBackend",
    "LedgerClient",
    "LedgerError",
    "ParticipantCounts",
    "Record",
    "RecordNotFound",
    "build_ledger_client",
    "get_ledger_client",
    "register_ledger",
    "HttpLedgerClient",
    "InMemoryLedger",
]
