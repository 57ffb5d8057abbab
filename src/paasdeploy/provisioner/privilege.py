# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/privilege.py

from __future__ import annotations

import logging
from typing import Optional

from paasdeploy.errors import PaasDeployError, RemoteCommandError
from paasdeploy.utils.command import ROOT_UID, elevate, strip_sudo_prompt

from .interface import RemoteExecutor

log = logging.getLogger("paasdeploy")


def run_command(executor: RemoteExecutor, command: str, *, timeout: Optional[float] = None) -> str:
    """Run unprivileged; return trimmed stdout or raise RemoteCommandError."""
    res = executor.run(command, timeout=timeout)
    if not res.ok:
        raise RemoteCommandError(command, res.exit_status, res.stderr.strip())
    return res.stdout.strip()


def command_succeeds(executor: RemoteExecutor, command: str) -> bool:
    try:
        run_command(executor, command)
        return True
    except PaasDeployError:
        return False


class PrivilegeExecutor:
    """
    Runs commands as root with the least elevation the session allows:

      - uid "0"        : directly
      - password known : sudo -S, password written once to stdin
      - otherwise      : sudo -n (never waits for a prompt)
    """

    def __init__(self, executor: RemoteExecutor, uid: str, password: Optional[str] = None):
        self.executor = executor
        self.uid = uid
        self.password = password or None

    @property
    def is_root(self) -> bool:
        return self.uid == ROOT_UID

    def run(self, command: str, *, timeout: Optional[float] = None) -> str:
        """
        Returns trimmed stdout. Raises RemoteCommandError with the command
        (not the elevated wrapper) and sudo banners stripped from stderr, or
        CommandTimeoutError if timeout elapsed first (outcome unknown).
        """
        line, stdin = elevate(command, self.uid, self.password)
        res = self.executor.run(line, stdin=stdin, timeout=timeout)
        if not res.ok:
            raise RemoteCommandError(command, res.exit_status, strip_sudo_prompt(res.stderr))
        return res.stdout.strip()

    def succeeds(self, command: str) -> bool:
        try:
            self.run(command)
            return True
        except PaasDeployError as exc:
            log.debug("[privilege] probe failed: %s", exc)
            return False
