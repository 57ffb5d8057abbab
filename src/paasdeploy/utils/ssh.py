# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/utils/ssh.py

from __future__ import annotations

import io
import logging
from typing import Optional

import paramiko
from paramiko.hostkeys import HostKeyEntry, InvalidHostKey

from paasdeploy.errors import SSHConnectError
from paasdeploy.provisioner.interface import HostKeyStore
from paasdeploy.provisioner.models import DEFAULT_SSH_PORT, TargetHost
from paasdeploy.utils.retry import RetryError, retry
from paasdeploy.utils.ssh_runner import SSHRunner

log = logging.getLogger("paasdeploy")

_KEY_CLASSES = (
    paramiko.Ed25519Key,
    paramiko.ECDSAKey,
    paramiko.RSAKey,
)


def load_private_key(text: str, passphrase: Optional[str] = None) -> paramiko.PKey:
    """Parse PEM/OpenSSH private key text, trying each supported key type."""
    last_exc: Optional[Exception] = None
    for key_cls in _KEY_CLASSES:
        try:
            return key_cls.from_private_key(io.StringIO(text), password=passphrase)
        except (paramiko.SSHException, ValueError) as exc:
            last_exc = exc
            continue
    raise SSHConnectError(f"parse private key: unsupported or invalid key ({last_exc})")


def known_hosts_name(address: str, port: int) -> str:
    if port == DEFAULT_SSH_PORT:
        return address
    return f"[{address}]:{port}"


def format_host_key(key: paramiko.PKey) -> str:
    return f"{key.get_name()} {key.get_base64()}"


def parse_host_key(line: Optional[str]) -> Optional[paramiko.PKey]:
    """
    Parse a pinned "<type> <base64>" host key. Returns None if empty or invalid.
    """
    if not line or not line.strip():
        return None
    try:
        entry = HostKeyEntry.from_line(f"pinned {line.strip()}")
    except (paramiko.SSHException, InvalidHostKey, ValueError) as exc:
        log.warning("[ssh] ignoring unparsable pinned host key: %s", exc)
        return None
    if entry is None or entry.key is None:
        log.warning("[ssh] ignoring unparsable pinned host key")
        return None
    return entry.key


class TrustOnFirstUsePolicy(paramiko.MissingHostKeyPolicy):
    """
    Accept the key presented on first contact and hand it to the host-key
    store. A store failure is logged; the connection proceeds.
    """

    def __init__(self, server_id: str, store: Optional[HostKeyStore] = None):
        self.server_id = server_id
        self.store = store
        self.observed: Optional[str] = None

    def missing_host_key(self, client, hostname, key):
        client.get_host_keys().add(hostname, key.get_name(), key)
        self.observed = format_host_key(key)
        log.info("[ssh] trusting %s host key for %s on first use", key.get_name(), hostname)
        if self.store is None:
            return
        try:
            self.store.save(self.server_id, self.observed)
        except Exception as exc:
            log.warning("[ssh] could not persist host key for %s: %s", self.server_id, exc)


def open_ssh(
    target: TargetHost,
    *,
    host_key_store: Optional[HostKeyStore] = None,
    connect_timeout: float = 30.0,
    attempts: int = 1,
    retry_delay: float = 5.0,
) -> tuple[SSHRunner, Optional[str]]:
    """
    Dial and authenticate. Returns the runner plus the host key observed on
    first use (None when a pinned key was enforced).
    """
    pkey = load_private_key(target.private_key) if target.private_key else None
    if pkey is None and not target.password:
        raise SSHConnectError("no ssh auth methods configured")

    pinned = parse_host_key(target.host_key)

    @retry(
        attempts=attempts,
        delay=retry_delay,
        max_delay=30.0,
        retry_on=(paramiko.SSHException, OSError),
        on_retry=lambda n, e: log.info(
            "[%s] SSH not ready (attempt %d/%d, %s: %s)",
            target.address, n, attempts, type(e).__name__, e,
        ),
    )
    def _dial() -> tuple[paramiko.SSHClient, Optional[str]]:
        client = paramiko.SSHClient()
        policy: Optional[TrustOnFirstUsePolicy] = None
        if pinned is not None:
            client.get_host_keys().add(
                known_hosts_name(target.address, target.port), pinned.get_name(), pinned
            )
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            policy = TrustOnFirstUsePolicy(target.server_id, host_key_store)
            client.set_missing_host_key_policy(policy)

        try:
            client.connect(
                hostname=target.address,
                port=target.port,
                username=target.username,
                pkey=pkey,
                password=target.password,
                look_for_keys=False,
                allow_agent=False,
                timeout=connect_timeout,
                banner_timeout=connect_timeout,
                auth_timeout=connect_timeout,
            )
        except paramiko.BadHostKeyException as exc:
            client.close()
            raise SSHConnectError(f"host key mismatch for {target.address}: {exc}") from exc
        except paramiko.AuthenticationException as exc:
            client.close()
            raise SSHConnectError(f"authentication failed for {target.username}@{target.address}: {exc}") from exc
        except paramiko.SSHException as exc:
            client.close()
            if pinned is not None and "not found in known_hosts" in str(exc):
                raise SSHConnectError(f"host key for {target.address} does not match pinned key") from exc
            raise
        except OSError:
            client.close()
            raise
        return client, (policy.observed if policy else None)

    try:
        client, observed = _dial()
    except RetryError as exc:
        raise SSHConnectError(f"dial {target.address}:{target.port}: {exc.last}") from exc.last
    return SSHRunner(client), observed
