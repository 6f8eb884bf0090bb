"""
Ledger Client — Abstract Base Class

Every ledger accessor (HTTP gateway, in-memory demo ledger) implements
this read-only interface so the refresh engine is source-agnostic.

The ledger is append-only: record ids are assigned by sequential
insertion, so the valid range is always 1..get_count(). Nothing in
LedgerPulse writes to it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

import structlog

logger = structlog.get_logger()


# ── Ledger backends ───────────────────────────────────────────────────────


class LedgerBackend(str, Enum):
    """Supported ledger access paths."""

    MEMORY = "memory"  # In-process ledger (tests, demos)
    HTTP = "http"  # JSON gateway in front of the supply-chain contract


# ── Errors ────────────────────────────────────────────────────────────────


class LedgerError(Exception):
    """Base class for every failure reported by a ledger client."""

    kind = "ledger_error"


class ConnectivityFailure(LedgerError):
    """The ledger could not be reached (transport error, timeout, 5xx)."""

    kind = "connectivity"


class RecordNotFound(LedgerError):
    """An id expected to exist is outside the ledger's stored range."""

    kind = "not_found"

    def __init__(self, record_id: int, message: str | None = None):
        self.record_id = record_id
        super().__init__(message or f"Record {record_id} does not exist on the ledger")


class DecodeFailure(LedgerError):
    """A ledger response could not be interpreted."""

    kind = "decode"


# ── Records ───────────────────────────────────────────────────────────────


StageMarker = int | str | None


@dataclass(frozen=True)
class Record:
    """One tracked medicine batch as stored on the ledger."""

    id: int
    name: str
    description: str = ""
    stage: StageMarker = None
    stage_label: str | None = None
    timestamps: Mapping[str, int | None] = field(default_factory=dict)
    rms_id: int = 0
    man_id: int = 0
    dis_id: int = 0
    ret_id: int = 0

    @property
    def stage_marker(self) -> StageMarker:
        """Raw marker used for classification: numeric stage first, label second."""
        if self.stage is not None and self.stage != "":
            return self.stage
        return self.stage_label

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "stage": self.stage,
            "stageLabel": self.stage_label,
            "timestamps": dict(self.timestamps),
            "rmsId": self.rms_id,
            "manId": self.man_id,
            "disId": self.dis_id,
            "retId": self.ret_id,
        }


@dataclass(frozen=True)
class ParticipantCounts:
    """Registered supply-chain participants per role."""

    rms: int = 0
    man: int = 0
    dis: int = 0
    ret: int = 0

    @property
    def total(self) -> int:
        return self.rms + self.man + self.dis + self.ret

    def to_dict(self) -> dict[str, int]:
        return {
            "rms": self.rms,
            "man": self.man,
            "dis": self.dis,
            "ret": self.ret,
            "total": self.total,
        }


# ── Abstract client ───────────────────────────────────────────────────────


class LedgerClient(ABC):
    """
    Read-only accessor for the supply-chain ledger.

    Lifecycle:
        1. __init__(config)          : load endpoint / credentials
        2. connect()                 : optional session / account handshake
        3. get_count()               : number of records (ids 1..N)
        4. get_record(id)            : one record; RecordNotFound past N
        5. get_stage(id)             : free-text stage label for a record
        6. get_timestamps(id)        : lifecycle event times (epoch seconds)
        7. close()                   : release transport resources

    get_stage and get_record are separate calls and may straddle a
    concurrent ledger write; callers must not assume they agree.
    """

    def __init__(self, config: dict[str, Any] | None = None):
        self.config = dict(config or {})
        self.logger = logger.bind(ledger=self.backend.value)

    @property
    @abstractmethod
    def backend(self) -> LedgerBackend:
        """Return the backend this client speaks to."""
        ...

    async def connect(self) -> None:
        """Establish a session with the ledger. No-op by default."""
        return None

    @abstractmethod
    async def get_count(self) -> int:
        """Return the number of records currently stored."""
        ...

    @abstractmethod
    async def get_record(self, record_id: int) -> Record:
        """Return the record with the given 1-based id."""
        ...

    @abstractmethod
    async def get_stage(self, record_id: int) -> str:
        """Return the ledger's free-text stage label for a record."""
        ...

    @abstractmethod
    async def get_timestamps(self, record_id: int) -> dict[str, int | None]:
        """Return named lifecycle events mapped to epoch seconds (None if unset)."""
        ...

    async def get_participant_counts(self) -> ParticipantCounts:
        """Return registered participant counts. Ledgers without roles report zeros."""
        return ParticipantCounts()

    async def close(self) -> None:
        return None


# ── Client registry ───────────────────────────────────────────────────────

_LEDGER_REGISTRY: dict[LedgerBackend, type[LedgerClient]] = {}


def register_ledger(client_cls: type[LedgerClient]):
    """Decorator: register a ledger client class for its backend."""
    _LEDGER_REGISTRY[client_cls.backend.fget(None)] = client_cls  # type: ignore
    return client_cls


def get_ledger_client(
    backend: LedgerBackend | str,
    config: dict[str, Any] | None = None,
) -> LedgerClient:
    """
    Factory: create a ledger client for the given backend.

    Raises ValueError if no client is registered for the backend.
    """
    try:
        backend = LedgerBackend(backend)
    except ValueError:
        raise ValueError(f"Unknown ledger backend: {backend!r}") from None

    client_cls = _LEDGER_REGISTRY.get(backend)
    if client_cls is None:
        raise ValueError(
            f"No ledger client registered for {backend.value}. Available: {[t.value for t in _LEDGER_REGISTRY]}"
        )
    return client_cls(config)


def build_ledger_client(settings) -> LedgerClient:
    """Create the ledger client described by application settings."""
    return get_ledger_client(
        settings.ledger_backend,
        {
            "base_url": settings.ledger_url,
            "api_key": settings.ledger_api_key,
            "timeout_seconds": settings.query_timeout_seconds,
        },
    )
