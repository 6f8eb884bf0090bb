#!/usr/bin/env python3
"""Run one dashboard refresh cycle and print the resulting snapshot as JSON.

Examples:
  python backend/scripts/print_snapshot.py --demo --pretty
  LEDGER_BACKEND=http LEDGER_URL=http://gateway:8545 python backend/scripts/print_snapshot.py
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import get_settings
from dashboard.scheduler import RefreshScheduler
from dashboard.triggers import AsyncioIntervalTimer, LocalChangeEventSource, TriggerReason
from ledger.base import LedgerClient, build_ledger_client
from ledger.memory import InMemoryLedger

DEMO_BATCHES = (
    ("Paracetamol 500mg", 5),
    ("Amoxicillin 250mg", 4),
    ("Ibuprofen 200mg", 3),
    ("Insulin Glargine", 2),
    ("Metformin 850mg", 1),
    ("Cetirizine 10mg", 0),
    ("Omeprazole 20mg", 5),
)


def seed_demo_ledger(ledger: InMemoryLedger) -> None:
    base_ts = 1_700_000_000
    for offset, (name, stage) in enumerate(DEMO_BATCHES):
        ledger.append(
            name,
            stage,
            description=f"Demo batch {offset + 1}",
            timestamps={"orderedAt": base_ts + offset * 3600},
        )
    ledger.set_participants(rms=2, man=1, dis=1, ret=3)


async def _run_once(ledger: LedgerClient) -> dict[str, Any]:
    settings = get_settings()
    scheduler = RefreshScheduler.from_settings(
        settings,
        ledger,
        timer=AsyncioIntervalTimer(settings.refresh_interval_seconds),
        change_source=LocalChangeEventSource(),
    )
    try:
        snapshot = await scheduler.refresh(TriggerReason.MANUAL)
    finally:
        await scheduler.aclose()
        await ledger.close()
    return snapshot.to_dict()


def main() -> int:
    parser = argparse.ArgumentParser(description="Print a one-off dashboard snapshot")
    parser.add_argument("--demo", action="store_true", help="Use a seeded in-memory ledger")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args()

    settings = get_settings()
    if args.demo:
        ledger: LedgerClient = InMemoryLedger()
        seed_demo_ledger(ledger)
    else:
        ledger = build_ledger_client(settings)

    payload = asyncio.run(_run_once(ledger))

    if args.pretty:
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(json.dumps(payload))

    return 0 if payload["lastError"] is None else 1


if __name__ == "__main__":
    raise SystemExit(main())
