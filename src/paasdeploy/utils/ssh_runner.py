# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/utils/ssh_runner.py

from __future__ import annotations

import logging
import time
from typing import Optional

import paramiko

from paasdeploy.errors import CommandTimeoutError, RemoteCommandError, SSHConnectError
from paasdeploy.provisioner.models import CommandResult

log = logging.getLogger("paasdeploy")

_RECV_CHUNK = 32768


class SSHRunner:
    """
    Executes commands over one paramiko connection.

    Every call opens a fresh channel on the shared transport, so the whole run
    uses a single TCP/SSH connection.
    """

    def __init__(self, client: paramiko.SSHClient, *, poll_interval: float = 0.2):
        self.client = client
        self.poll_interval = poll_interval

    def run(
        self,
        command: str,
        *,
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        log.debug("[ssh] $ %s", command)

        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise RemoteCommandError(command, None, "ssh transport is not active")

        try:
            chan = transport.open_session()
            chan.exec_command(command)
            if stdin:
                chan.sendall(stdin)
            chan.shutdown_write()
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteCommandError(command, None, str(exc)) from exc

        deadline = time.monotonic() + timeout if timeout else None
        out_chunks: list[bytes] = []
        err_chunks: list[bytes] = []

        while True:
            got = False
            if chan.recv_ready():
                out_chunks.append(chan.recv(_RECV_CHUNK))
                got = True
            if chan.recv_stderr_ready():
                err_chunks.append(chan.recv_stderr(_RECV_CHUNK))
                got = True
            if not got and chan.exit_status_ready():
                break
            if deadline is not None and time.monotonic() >= deadline:
                # channel stays open, the remote process is not signalled
                log.warning("[ssh] timed out after %ss, remote command left running: %s", timeout, command)
                raise CommandTimeoutError(command, timeout)
            if not got:
                time.sleep(self.poll_interval)

        # output buffered between the ready checks and the exit status
        _drain(chan.recv_ready, chan.recv, out_chunks)
        _drain(chan.recv_stderr_ready, chan.recv_stderr, err_chunks)
        rc = chan.recv_exit_status()
        chan.close()

        out = b"".join(out_chunks).decode("utf-8", errors="replace")
        err = b"".join(err_chunks).decode("utf-8", errors="replace")
        log.debug("[ssh] exit %s", rc)
        return CommandResult(exit_status=rc, stdout=out, stderr=err)

    def open_sftp(self) -> paramiko.SFTPClient:
        try:
            return self.client.open_sftp()
        except (paramiko.SSHException, OSError) as exc:
            raise SSHConnectError(f"open sftp session: {exc}") from exc

    def close(self) -> None:
        self.client.close()


def _drain(ready, recv, chunks: list[bytes]) -> None:
    while ready():
        chunk = recv(_RECV_CHUNK)
        if not chunk:
            break
        chunks.append(chunk)
