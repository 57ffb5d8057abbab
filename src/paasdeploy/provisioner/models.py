# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/models.py

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from paasdeploy.observers.events import FAILED, OK, RUNNING  # noqa: F401  (step statuses)

# ---------------------------------------------------------------------
# Fixed remote layout
# ---------------------------------------------------------------------
AGENT_DIR_NAME = "paasdeploy-agent"
AGENT_BINARY_NAME = "agent"
AGENT_UNIT_NAME = "paasdeploy-agent.service"
USER_UNIT_SUBDIR = ".config/systemd/user"
CA_CERT_FILE = "ca.pem"
CERT_FILE = "cert.pem"
KEY_FILE = "key.pem"

DEFAULT_SSH_PORT = 22
DEFAULT_BACKEND_ADDR = "localhost:50051"
DEFAULT_AGENT_PORT = 50052


@dataclass(frozen=True)
class TargetHost:
    """
    A server to provision. Immutable for the duration of one run.
    """
    server_id: str                      # stable identifier, used for certs and host-key persistence
    address: str                        # IP or DNS to connect
    username: str                       # SSH username
    port: int = DEFAULT_SSH_PORT
    private_key: Optional[str] = field(default=None, repr=False)   # PEM text
    password: Optional[str] = field(default=None, repr=False)      # SSH + sudo -S secret
    host_key: Optional[str] = None      # pinned "<type> <base64>" from a previous run


@dataclass(frozen=True)
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


@dataclass(frozen=True)
class CertificateBundle:
    ca_pem: bytes
    cert_pem: bytes
    key_pem: bytes = field(repr=False)


@dataclass(frozen=True)
class ProvisionPaths:
    """
    Where the agent lives on the remote host. Derived once per run.

    install_dir and unit_dir are either both absolute (home-rooted) or both
    relative to the SFTP session's working directory (fallback layout).
    """
    install_dir: str
    unit_dir: str
    runtime_dir: str

    @property
    def is_relative(self) -> bool:
        return not posixpath.isabs(self.install_dir)

    @property
    def ca_path(self) -> str:
        return posixpath.join(self.install_dir, CA_CERT_FILE)

    @property
    def cert_path(self) -> str:
        return posixpath.join(self.install_dir, CERT_FILE)

    @property
    def key_path(self) -> str:
        return posixpath.join(self.install_dir, KEY_FILE)

    @property
    def binary_path(self) -> str:
        return posixpath.join(self.install_dir, AGENT_BINARY_NAME)

    @property
    def unit_path(self) -> str:
        return posixpath.join(self.unit_dir, AGENT_UNIT_NAME)


@dataclass
class ProvisionOptions:
    """
    Static configuration shared by every run of one SSHProvisioner.
    """
    backend_addr: Optional[str] = None          # defaults to DEFAULT_BACKEND_ADDR
    agent_port: Optional[int] = None            # defaults to DEFAULT_AGENT_PORT
    agent_binary_path: Optional[Path] = None    # None -> binary step is skipped
    acme_email: Optional[str] = None            # None -> reverse proxy step is skipped
    connect_timeout: float = 30.0
    connect_attempts: int = 1
    connect_retry_delay: float = 5.0

    @property
    def effective_backend_addr(self) -> str:
        return self.backend_addr or DEFAULT_BACKEND_ADDR

    @property
    def effective_agent_port(self) -> int:
        return self.agent_port or DEFAULT_AGENT_PORT


@dataclass
class RemoteSession:
    """
    One open, authenticated connection plus the identity resolved on it.
    Owned by the orchestrator and closed on every exit path.
    """
    runner: Any
    username: str
    uid: str = ""
    home: str = ""
    sftp: Any = None

    def close(self) -> None:
        try:
            if self.sftp is not None:
                self.sftp.close()
        finally:
            self.runner.close()


@dataclass
class ProvisionResult:
    server_id: str
    paths: Optional[ProvisionPaths] = None
    steps: List[str] = field(default_factory=list)
    observed_host_key: Optional[str] = None
