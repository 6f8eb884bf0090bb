"""
Ledger Gateway Client

Reads the supply-chain contract through a JSON gateway that mirrors the
contract's view functions:

    medicineCtr()                → GET /medicines/count
    MedicineStock(id)            → GET /medicines/{id}
    showStage(id)                → GET /medicines/{id}/stage
    getMedicineTimestamps(id)    → GET /medicines/{id}/timestamps
    rmsCtr/manCtr/disCtr/retCtr  → GET /participants/counts

uint256 values arrive as decimal strings and are decoded here.
"""

from __future__ import annotations

from typing import Any

import httpx

from ledger.base import (
    ConnectivityFailure,
    DecodeFailure,
    LedgerBackend,
    LedgerClient,
    ParticipantCounts,
    Record,
    RecordNotFound,
    register_ledger,
)


def _to_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise DecodeFailure(f"Field {field_name!r} is a boolean, expected an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DecodeFailure(f"Field {field_name!r} is not an integer: {value!r}") from None


def _decode_stage(value: Any) -> int | str | None:
    if value is None or isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip()
        return int(text) if text.isdecimal() else text
    raise DecodeFailure(f"Unsupported stage marker: {value!r}")


def map_payload_to_record(payload: Any) -> Record:
    """Map a MedicineStock gateway payload to a LedgerPulse Record."""
    if not isinstance(payload, dict):
        raise DecodeFailure(f"Record payload must be an object, got {type(payload).__name__}")
    if "id" not in payload:
        raise DecodeFailure("Record payload is missing 'id'")

    record_id = _to_int(payload["id"], "id")
    if record_id < 1:
        raise DecodeFailure(f"Record id must be positive, got {record_id}")

    return Record(
        id=record_id,
        name=str(payload.get("name", "")),
        description=str(payload.get("description", "")),
        stage=_decode_stage(payload.get("stage")),
        rms_id=_to_int(payload.get("RMSid", 0), "RMSid"),
        man_id=_to_int(payload.get("MANid", 0), "MANid"),
        dis_id=_to_int(payload.get("DISid", 0), "DISid"),
        ret_id=_to_int(payload.get("RETid", 0), "RETid"),
    )


def map_timestamps(payload: Any) -> dict[str, int | None]:
    """Decode a timestamps payload; zero means the event has not happened."""
    if not isinstance(payload, dict):
        raise DecodeFailure(f"Timestamps payload must be an object, got {type(payload).__name__}")
    timestamps: dict[str, int | None] = {}
    for event, raw in payload.items():
        if raw in (None, "", 0, "0"):
            timestamps[str(event)] = None
        else:
            timestamps[str(event)] = _to_int(raw, str(event))
    return timestamps


@register_ledger
class HttpLedgerClient(LedgerClient):
    """
    Gateway-backed ledger client.

    Config expects:
        {
            "base_url": "http://localhost:8545",
            "api_key": "",                  # optional bearer token
            "timeout_seconds": 10.0,
            "transport": <httpx transport>, # optional, tests only
        }
    """

    @property
    def backend(self) -> LedgerBackend:
        return LedgerBackend.HTTP

    def __init__(self, config: dict[str, Any] | None = None):
        super().__init__(config)
        self.base_url = str(self.config.get("base_url", "http://localhost:8545")).rstrip("/")
        headers = {"Accept": "application/json"}
        api_key = self.config.get("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=float(self.config.get("timeout_seconds", 10.0)),
            transport=self.config.get("transport"),
        )

    async def connect(self) -> None:
        await self._get("/health")
        self.logger.info("ledger.connected", base_url=self.base_url)

    async def get_count(self) -> int:
        payload = await self._get("/medicines/count")
        count = _to_int(payload.get("count") if isinstance(payload, dict) else payload, "count")
        if count < 0:
            raise DecodeFailure(f"Ledger reported a negative record count: {count}")
        return count

    async def get_record(self, record_id: int) -> Record:
        payload = await self._get(f"/medicines/{record_id}", record_id=record_id)
        return map_payload_to_record(payload)

    async def get_stage(self, record_id: int) -> str:
        payload = await self._get(f"/medicines/{record_id}/stage", record_id=record_id)
        stage = payload.get("stage") if isinstance(payload, dict) else payload
        if not isinstance(stage, str):
            raise DecodeFailure(f"Stage label for record {record_id} is not text: {stage!r}")
        return stage

    async def get_timestamps(self, record_id: int) -> dict[str, int | None]:
        payload = await self._get(f"/medicines/{record_id}/timestamps", record_id=record_id)
        return map_timestamps(payload)

    async def get_participant_counts(self) -> ParticipantCounts:
        payload = await self._get("/participants/counts")
        if not isinstance(payload, dict):
            raise DecodeFailure("Participant counts payload must be an object")
        return ParticipantCounts(
            rms=_to_int(payload.get("rms", 0), "rms"),
            man=_to_int(payload.get("man", 0), "man"),
            dis=_to_int(payload.get("dis", 0), "dis"),
            ret=_to_int(payload.get("ret", 0), "ret"),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, record_id: int | None = None) -> Any:
        try:
            response = await self._client.get(path)
        except httpx.TimeoutException as exc:
            self.logger.warning("ledger.http_timeout", path=path)
            raise ConnectivityFailure(f"Ledger gateway timed out on {path}") from exc
        except httpx.TransportError as exc:
            self.logger.warning("ledger.http_unreachable", path=path, error=str(exc))
            raise ConnectivityFailure(f"Ledger gateway unreachable: {exc}") from exc

        if response.status_code == 404 and record_id is not None:
            raise RecordNotFound(record_id)
        if response.status_code >= 400:
            self.logger.warning("ledger.http_error", path=path, status_code=response.status_code)
            raise ConnectivityFailure(f"Ledger gateway returned HTTP {response.status_code} for {path}")

        try:
            return response.json()
        except ValueError as exc:
            raise DecodeFailure(f"Ledger gateway returned invalid JSON for {path}") from exc
