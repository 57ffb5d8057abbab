# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/errors.py
from __future__ import annotations

from typing import Optional


class PaasDeployError(RuntimeError):
    """Base class for provisioning failures."""


class SSHConnectError(PaasDeployError):
    """Dial, authentication or host-key verification failed."""


class RemoteCommandError(PaasDeployError):
    """A remote command exited non-zero (or could not be started)."""

    def __init__(self, command: str, exit_status: Optional[int] = None, stderr: str = ""):
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr
        msg = f"command failed: {command}"
        if exit_status is not None:
            msg += f" (exit {exit_status})"
        if stderr:
            msg += f" (stderr: {stderr})"
        super().__init__(msg)


class CommandTimeoutError(RemoteCommandError):
    """
    The deadline elapsed before the remote command finished.

    The remote process is NOT killed; its outcome is unknown and it may still
    complete on the host.
    """

    def __init__(self, command: str, timeout: float):
        self.timeout = timeout
        PaasDeployError.__init__(self, f"command timed out after {timeout:g}s: {command}")
        self.command = command
        self.exit_status = None
        self.stderr = ""


class RemoteWriteError(PaasDeployError):
    """Writing a file on the remote host failed."""


class BinaryDeployError(PaasDeployError):
    """Both the SFTP upload and the shell-pipe fallback failed."""

    def __init__(self, primary: Exception, fallback: Exception):
        self.primary = primary
        self.fallback = fallback
        super().__init__(f"sftp upload failed: {primary}; pipe fallback failed: {fallback}")


class ConfigValidationError(PaasDeployError, ValueError):
    """Caller-supplied input is invalid; raised before any remote mutation."""


class ProvisionError(PaasDeployError):
    """
    The single wrapped error a provisioning run surfaces to its caller.
    """

    def __init__(self, operation: str, cause: BaseException, step_id: Optional[str] = None):
        self.operation = operation
        self.step_id = step_id
        self.cause = cause
        super().__init__(f"{operation}: {cause}")
