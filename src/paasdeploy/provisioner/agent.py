# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/agent.py

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import Optional

import paramiko

from paasdeploy.errors import (
    BinaryDeployError,
    ConfigValidationError,
    PaasDeployError,
    ProvisionError,
    RemoteCommandError,
    RemoteWriteError,
)
from paasdeploy.observers.dispatcher import ProgressReporter
from paasdeploy.template_renderer import TemplateRenderer
from paasdeploy.utils.command import q, sh, with_env

from .interface import CertificateIssuer, RemoteExecutor
from .models import (
    AGENT_DIR_NAME,
    AGENT_UNIT_NAME,
    DEFAULT_AGENT_PORT,
    DEFAULT_BACKEND_ADDR,
    FAILED,
    OK,
    RUNNING,
    USER_UNIT_SUBDIR,
    ProvisionPaths,
    TargetHost,
)
from .privilege import run_command

log = logging.getLogger("paasdeploy")

UPLOAD_CHUNK_SIZE = 8 * 1024
TIMEOUT_BINARY_PIPE = 300.0
TIMEOUT_SYSTEMCTL = 30.0

UNIT_TEMPLATE = "agent.service.j2"

# paramiko raises IOError for SFTP status codes and SSHException for channel trouble
_SFTP_ERRORS = (OSError, paramiko.SSHException)


# ----------------------------------------------------------------------
# SFTP helpers
# ----------------------------------------------------------------------
def sftp_makedirs(sftp, path: str) -> None:
    """mkdir -p over SFTP."""
    current = "/" if path.startswith("/") else ""
    for part in [p for p in path.split("/") if p]:
        current = posixpath.join(current, part) if current else part
        try:
            sftp.stat(current)
        except OSError:
            sftp.mkdir(current)


def sftp_write(sftp, remote_path: str, data: bytes, mode: int) -> None:
    try:
        with sftp.open(remote_path, "wb") as fh:
            fh.chmod(mode)
            fh.write(data)
    except _SFTP_ERRORS as exc:
        raise RemoteWriteError(f"write {remote_path}: {exc}") from exc


# ----------------------------------------------------------------------
# Install layout
# ----------------------------------------------------------------------
def resolve_paths(sftp, home: str, uid: str) -> ProvisionPaths:
    """
    Prefer <home>/paasdeploy-agent; fall back to a directory relative to the
    SFTP working directory when the home-rooted one cannot be created.
    """
    runtime_dir = f"/run/user/{uid}"

    if home and home.startswith("/"):
        install_dir = posixpath.join(home, AGENT_DIR_NAME)
        try:
            sftp_makedirs(sftp, install_dir)
            return ProvisionPaths(
                install_dir=install_dir,
                unit_dir=posixpath.join(home, USER_UNIT_SUBDIR),
                runtime_dir=runtime_dir,
            )
        except _SFTP_ERRORS as exc:
            log.warning("[agent] cannot create %s (%s), using relative layout", install_dir, exc)

    try:
        sftp_makedirs(sftp, AGENT_DIR_NAME)
    except _SFTP_ERRORS as exc:
        raise RemoteWriteError(f"create install directory {AGENT_DIR_NAME}: {exc}") from exc
    return ProvisionPaths(
        install_dir=AGENT_DIR_NAME,
        unit_dir=USER_UNIT_SUBDIR,
        runtime_dir=runtime_dir,
    )


# ----------------------------------------------------------------------
# Certificates
# ----------------------------------------------------------------------
def install_certificates(sftp, issuer: CertificateIssuer, target: TargetHost, paths: ProvisionPaths) -> None:
    bundle = issuer.issue_agent_certificate(target.server_id, target.address)
    sftp_write(sftp, paths.ca_path, bundle.ca_pem, 0o644)
    sftp_write(sftp, paths.cert_path, bundle.cert_pem, 0o644)
    sftp_write(sftp, paths.key_path, bundle.key_pem, 0o600)
    log.debug("[agent] certificates written under %s", paths.install_dir)


# ----------------------------------------------------------------------
# Binary
# ----------------------------------------------------------------------
def _upload_sftp(sftp, local_path: Path, paths: ProvisionPaths) -> None:
    staged = f"{paths.binary_path}.new"
    with open(local_path, "rb") as src, sftp.open(staged, "wb") as dst:
        while True:
            chunk = src.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            dst.write(chunk)
    sftp.chmod(staged, 0o755)
    # rename, not overwrite: a running agent holds the old inode
    sftp.posix_rename(staged, paths.binary_path)


def _upload_pipe(executor: RemoteExecutor, local_path: Path, paths: ProvisionPaths) -> None:
    staged = f"{paths.binary_path}.new"
    cmd = f"cat > {q(staged)} && chmod +x {q(staged)} && mv -f {q(staged)} {q(paths.binary_path)}"
    res = executor.run(cmd, stdin=local_path.read_bytes(), timeout=TIMEOUT_BINARY_PIPE)
    if not res.ok:
        raise RemoteCommandError(cmd, res.exit_status, res.stderr.strip())


def deploy_binary(executor: RemoteExecutor, sftp, local_path, paths: ProvisionPaths) -> None:
    """
    Copy the agent binary to <install>/agent. SFTP first, shell pipe second.
    Raises BinaryDeployError naming both causes when neither works.
    """
    local_path = Path(local_path)
    if not local_path.is_file():
        raise ConfigValidationError(f"agent binary not found: {local_path}")

    try:
        _upload_sftp(sftp, local_path, paths)
        log.debug("[agent] binary uploaded via sftp (%d bytes)", local_path.stat().st_size)
        return
    except _SFTP_ERRORS as exc:
        primary = exc
        log.warning("[agent] sftp upload failed, trying shell pipe: %s", exc)

    try:
        _upload_pipe(executor, local_path, paths)
    except (PaasDeployError, OSError) as exc:
        raise BinaryDeployError(primary, exc) from exc


# ----------------------------------------------------------------------
# systemd user service
# ----------------------------------------------------------------------
def _unit_path_arg(path: str, relative: bool) -> str:
    return f"%h/{path}" if relative else path


def render_unit(
    paths: ProvisionPaths,
    server_id: str,
    backend_addr: Optional[str] = None,
    agent_port: Optional[int] = None,
    renderer: Optional[TemplateRenderer] = None,
) -> str:
    renderer = renderer or TemplateRenderer()
    rel = paths.is_relative
    return renderer.render(
        UNIT_TEMPLATE,
        {
            "server_id": server_id,
            "backend_addr": backend_addr or DEFAULT_BACKEND_ADDR,
            "agent_port": agent_port or DEFAULT_AGENT_PORT,
            "binary_path": _unit_path_arg(paths.binary_path, rel),
            "ca_path": _unit_path_arg(paths.ca_path, rel),
            "cert_path": _unit_path_arg(paths.cert_path, rel),
            "key_path": _unit_path_arg(paths.key_path, rel),
        },
    )


def systemctl_user(paths: ProvisionPaths, *args: str) -> str:
    return with_env(sh("systemctl", "--user", *args), XDG_RUNTIME_DIR=paths.runtime_dir)


def enable_linger(executor: RemoteExecutor, username: str) -> None:
    """Let the user manager start at boot without a login session. Best effort."""
    try:
        run_command(executor, sh("loginctl", "enable-linger", username), timeout=TIMEOUT_SYSTEMCTL)
    except PaasDeployError as exc:
        log.warning("[agent] enable-linger for %s failed: %s", username, exc)


def install_service(
    executor: RemoteExecutor,
    sftp,
    paths: ProvisionPaths,
    server_id: str,
    backend_addr: Optional[str] = None,
    agent_port: Optional[int] = None,
    *,
    username: Optional[str] = None,
    progress: Optional[ProgressReporter] = None,
) -> None:
    progress = progress or ProgressReporter(None, server_id)

    progress.step("systemd_unit", RUNNING, "Installing systemd unit...")
    try:
        unit = render_unit(paths, server_id, backend_addr, agent_port)
        sftp_makedirs(sftp, paths.unit_dir)
        sftp_write(sftp, paths.unit_path, unit.encode("utf-8"), 0o644)
    except (PaasDeployError, *_SFTP_ERRORS) as exc:
        progress.step("systemd_unit", FAILED, str(exc))
        raise ProvisionError("install unit", exc, "systemd_unit") from exc
    progress.line(f"Wrote {paths.unit_path}")

    if username:
        enable_linger(executor, username)

    try:
        run_command(executor, systemctl_user(paths, "daemon-reload"), timeout=TIMEOUT_SYSTEMCTL)
    except PaasDeployError as exc:
        progress.step("systemd_unit", FAILED, str(exc))
        raise ProvisionError("install unit", exc, "systemd_unit") from exc
    progress.step("systemd_unit", OK, "systemd unit installed")

    progress.step("start_agent", RUNNING, "Starting agent...")
    try:
        run_command(executor, systemctl_user(paths, "enable", AGENT_UNIT_NAME), timeout=TIMEOUT_SYSTEMCTL)
        run_command(executor, systemctl_user(paths, "restart", AGENT_UNIT_NAME), timeout=TIMEOUT_SYSTEMCTL)
    except PaasDeployError as exc:
        progress.step("start_agent", FAILED, str(exc))
        raise ProvisionError("start agent", exc, "start_agent") from exc
    progress.line(f"{AGENT_UNIT_NAME} enabled and restarted")
    progress.step("start_agent", OK, "Agent started")


def stop_service(executor: RemoteExecutor, paths: ProvisionPaths) -> None:
    """
    systemctl --user stop, then disable. Both are attempted; the first
    failure is raised afterwards.
    """
    first: Optional[PaasDeployError] = None
    for action in ("stop", "disable"):
        try:
            run_command(executor, systemctl_user(paths, action, AGENT_UNIT_NAME), timeout=TIMEOUT_SYSTEMCTL)
        except PaasDeployError as exc:
            log.info("[agent] systemctl --user %s: %s", action, exc)
            first = first or exc
    if first is not None:
        raise first


def delete_unit(executor: RemoteExecutor, paths: ProvisionPaths) -> None:
    run_command(executor, f"rm -f {q(paths.unit_path)}")
    run_command(executor, systemctl_user(paths, "daemon-reload"), timeout=TIMEOUT_SYSTEMCTL)
