# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/observers/dispatcher.py
from __future__ import annotations

import logging
from typing import List, Optional

from .events import OK, BaseEvent, LogLine, StepEvent, new_ctx, now_ts

log = logging.getLogger("paasdeploy")


class EventBus:
    """Fan-out to observers. No observers means events go nowhere."""

    def __init__(self, observers: Optional[List] = None):
        self._observers = list(observers or [])

    def subscribe(self, observer) -> None:
        self._observers.append(observer)

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception:
                # observers must not break a provisioning run
                log.debug("observer %r failed on %s", ob, type(event).__name__, exc_info=True)


class ProgressReporter:
    """
    Step transitions and free-text lines for one run, bound to one target.
    """

    def __init__(self, bus: Optional[EventBus], server_id: str, run_id: Optional[str] = None):
        self.bus = bus or EventBus()
        self.ctx = new_ctx(server_id, run_id)
        self.completed: List[str] = []

    @property
    def run_id(self) -> str:
        return self.ctx["run_id"]

    def step(self, step_id: str, status: str, message: str) -> None:
        log.debug("[%s] %s %s: %s", self.ctx["server_id"], step_id, status, message)
        if status == OK and step_id not in self.completed:
            self.completed.append(step_id)
        self.bus.emit(StepEvent(ts=now_ts(), step_id=step_id, status=status, message=message, **self.ctx))

    def line(self, text: str) -> None:
        log.debug("[%s] %s", self.ctx["server_id"], text)
        self.bus.emit(LogLine(ts=now_ts(), line=text, **self.ctx))
