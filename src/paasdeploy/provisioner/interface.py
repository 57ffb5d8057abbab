# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/interface.py

from __future__ import annotations

from typing import Optional, Protocol

from .models import CertificateBundle, CommandResult


class RemoteExecutor(Protocol):
    """
    Runs one shell command on the remote host.

    stdin is written in full and then closed. When timeout elapses first a
    CommandTimeoutError is raised and the remote process is left running.
    """
    def run(
        self,
        command: str,
        *,
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult: ...


class CertificateIssuer(Protocol):
    def issue_agent_certificate(self, server_id: str, host: str) -> CertificateBundle: ...


class HostKeyStore(Protocol):
    def save(self, server_id: str, host_key: str) -> None: ...
