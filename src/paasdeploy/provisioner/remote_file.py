# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/remote_file.py

from __future__ import annotations

import logging
import uuid
from typing import Optional

from paasdeploy.errors import PaasDeployError, RemoteWriteError
from paasdeploy.utils.command import ROOT_UID, elevate_noninteractive, q, sh

from .interface import RemoteExecutor
from .privilege import PrivilegeExecutor, run_command

log = logging.getLogger("paasdeploy")

TMP_PREFIX = "/tmp/.paasdeploy_"


class RemoteFileWriter:
    """
    Writes a byte buffer to an absolute remote path, picking a strategy by
    identity:

      1. root                -> cat > path
      2. non-root + password -> cat > /tmp/..., then sudo -S mv into place
      3. non-root, no secret -> sudo -n tee path

    On any failure the target's previous content is indeterminate.
    """

    def __init__(self, executor: RemoteExecutor, uid: str, password: Optional[str] = None):
        self.executor = executor
        self.uid = uid
        self.password = password or None
        self.privileged = PrivilegeExecutor(executor, uid, password)

    def write(self, remote_path: str, data: bytes) -> None:
        log.debug("[write] %d bytes -> %s", len(data), remote_path)
        if self.uid == ROOT_UID:
            self._write_direct(remote_path, data)
        elif self.password:
            self._write_via_temp(remote_path, data)
        else:
            self._write_via_tee(remote_path, data)

    def _write_direct(self, remote_path: str, data: bytes) -> None:
        cmd = f"cat > {q(remote_path)}"
        res = self.executor.run(cmd, stdin=data)
        if not res.ok:
            raise RemoteWriteError(f"write {remote_path}: {res.stderr.strip() or f'exit {res.exit_status}'}")

    def _write_via_tee(self, remote_path: str, data: bytes) -> None:
        cmd = f"{elevate_noninteractive(sh('tee', remote_path))} > /dev/null"
        res = self.executor.run(cmd, stdin=data)
        if not res.ok:
            raise RemoteWriteError(f"write {remote_path} (sudo tee): {res.stderr.strip() or f'exit {res.exit_status}'}")

    def _write_via_temp(self, remote_path: str, data: bytes) -> None:
        tmp_path = f"{TMP_PREFIX}{uuid.uuid4().hex}"
        try:
            self._write_direct(tmp_path, data)
        except RemoteWriteError as exc:
            raise RemoteWriteError(f"write temp file: {exc}") from exc

        try:
            self.privileged.run(f"mv {q(tmp_path)} {q(remote_path)}")
        except PaasDeployError as exc:
            try:
                run_command(self.executor, f"rm -f {q(tmp_path)}")
            except PaasDeployError as cleanup_exc:
                log.warning("[write] could not remove temp file %s: %s", tmp_path, cleanup_exc)
            raise RemoteWriteError(f"move file to destination: {exc}") from exc
