# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/observers/callback.py
from __future__ import annotations

from typing import Optional

from .events import BaseEvent, LogLine, StepEvent
from .interface import LineCallback, StepCallback


class CallbackObserver:
    """
    Adapts the two bare progress callbacks (step transitions, log lines)
    used by API handlers and SSE streams to the observer interface.
    """

    def __init__(self, on_step: Optional[StepCallback] = None, on_log: Optional[LineCallback] = None):
        self.on_step = on_step
        self.on_log = on_log

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, StepEvent) and self.on_step:
            self.on_step(event.step_id, event.status, event.message)
        elif isinstance(event, LogLine) and self.on_log:
            self.on_log(event.line)
