# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/observers/console.py
from __future__ import annotations

import typer

from .events import FAILED, OK, RUNNING, BaseEvent, LogLine, ProvisionSummary, StepEvent

_STATUS_COLORS = {
    RUNNING: typer.colors.CYAN,
    OK: typer.colors.GREEN,
    FAILED: typer.colors.RED,
}


class ConsoleObserver:
    def __init__(self, show_lines: bool = True):
        self.show_lines = show_lines

    def notify(self, event: BaseEvent) -> None:
        if isinstance(event, StepEvent):
            status = typer.style(
                f"{event.status.upper():<7}",
                fg=_STATUS_COLORS.get(event.status),
                bold=True,
            )
            typer.echo(f"[{event.server_id}] {status} {event.step_id:<16} {event.message}")
            return
        if isinstance(event, LogLine):
            if self.show_lines:
                typer.echo(f"[{event.server_id}]         {event.line}")
            return
        if isinstance(event, ProvisionSummary):
            color = typer.colors.GREEN if event.status == "OK" else typer.colors.RED
            msg = f"[{event.server_id}] {event.action} {event.status}"
            if event.error:
                msg += f": {event.error}"
            typer.secho(msg, fg=color, bold=True)
            return
        d = event.dict()
        k = event.__class__.__name__
        typer.echo(
            f"[{d['ts']}] {k} run={d['run_id']} server={d['server_id']} data={{"
            + ", ".join(f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id", "server_id"))
            + "}"
        )
