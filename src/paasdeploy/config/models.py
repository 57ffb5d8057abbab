# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from paasdeploy.provisioner.models import (
    DEFAULT_AGENT_PORT,
    DEFAULT_BACKEND_ADDR,
    DEFAULT_SSH_PORT,
    ProvisionOptions,
    TargetHost,
)
from paasdeploy.provisioner.traefik import sanitize_acme_email


class ProvisionerConfig(BaseModel):
    backend_addr: str = DEFAULT_BACKEND_ADDR
    agent_port: int = Field(default=DEFAULT_AGENT_PORT, ge=1, le=65535)
    agent_binary_path: Optional[Path] = None
    acme_email: Optional[str] = None
    connect_timeout: float = Field(default=30.0, gt=0)
    connect_attempts: int = Field(default=1, ge=1)
    connect_retry_delay: float = Field(default=5.0, ge=0)

    @field_validator("acme_email")
    @classmethod
    def _blank_email_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return sanitize_acme_email(v)

    def to_options(self) -> ProvisionOptions:
        return ProvisionOptions(
            backend_addr=self.backend_addr,
            agent_port=self.agent_port,
            agent_binary_path=self.agent_binary_path,
            acme_email=self.acme_email,
            connect_timeout=self.connect_timeout,
            connect_attempts=self.connect_attempts,
            connect_retry_delay=self.connect_retry_delay,
        )


class CAConfig(BaseModel):
    cert_path: Path = Path.home() / ".paasdeploy" / "ca" / "ca.pem"
    key_path: Path = Path.home() / ".paasdeploy" / "ca" / "ca-key.pem"
    validity_days: int = Field(default=365, ge=1)


class HostSpec(BaseModel):
    server_id: str
    address: str
    username: str = "root"
    port: int = Field(default=DEFAULT_SSH_PORT, ge=1, le=65535)
    private_key_path: Optional[Path] = None
    password: Optional[str] = None
    host_key: Optional[str] = None

    def to_target(self, host_key: Optional[str] = None) -> TargetHost:
        private_key = None
        if self.private_key_path:
            private_key = self.private_key_path.expanduser().read_text()
        return TargetHost(
            server_id=self.server_id,
            address=self.address,
            username=self.username,
            port=self.port,
            private_key=private_key,
            password=self.password or None,
            host_key=self.host_key or host_key,
        )


class PaasDeployConfig(BaseModel):
    provisioner: ProvisionerConfig = Field(default_factory=ProvisionerConfig)
    ca: CAConfig = Field(default_factory=CAConfig)
    host_key_store: Path = Path.home() / ".paasdeploy" / "known_hosts.json"
    hosts: List[HostSpec] = Field(default_factory=list)
    max_parallel: int = Field(default=4, ge=1)

    def host(self, server_id: str) -> HostSpec:
        for h in self.hosts:
            if h.server_id == server_id:
                return h
        raise KeyError(server_id)
