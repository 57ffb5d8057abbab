# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one provisioning run
    server_id: str    # target the run is acting on

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(server_id: str, run_id: str | None = None) -> Dict[str, Any]:
    return {
        "run_id": run_id or str(uuid.uuid4()),
        "server_id": server_id,
    }


# ---------------------------------------------------------------------
# Provisioning progress
# ---------------------------------------------------------------------
RUNNING = "running"
OK = "ok"
FAILED = "failed"


@dataclass(frozen=True)
class StepEvent(BaseEvent):
    step_id: str
    status: str       # RUNNING | OK | FAILED
    message: str


@dataclass(frozen=True)
class LogLine(BaseEvent):
    line: str


@dataclass(frozen=True)
class ProvisionSummary(BaseEvent):
    action: str       # "provision" | "deprovision"
    status: str       # "OK" | "FAILED"
    error: str | None = None
