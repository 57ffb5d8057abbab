# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/observers/interface.py
from __future__ import annotations

from typing import Callable, Protocol

from .events import BaseEvent

# on_step(step_id, status, message)
StepCallback = Callable[[str, str, str], None]
# on_log(line)
LineCallback = Callable[[str], None]


class Observer(Protocol):
    """Receives every event of a run. Must not block for long."""

    def notify(self, event: BaseEvent) -> None: ...
