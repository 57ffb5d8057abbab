# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/ssh_provisioner.py

from __future__ import annotations

import logging
import posixpath
from typing import Callable, Optional, TypeVar

from paasdeploy.errors import ConfigValidationError, PaasDeployError, ProvisionError
from paasdeploy.observers.dispatcher import EventBus, ProgressReporter
from paasdeploy.observers.events import ProvisionSummary, now_ts
from paasdeploy.utils.command import q
from paasdeploy.utils.ssh import open_ssh

from .agent import delete_unit, deploy_binary, install_certificates, install_service, resolve_paths, stop_service
from .docker import DockerProvisioner, NetworkProvisioner
from .interface import CertificateIssuer, HostKeyStore
from .models import (
    AGENT_DIR_NAME,
    FAILED,
    OK,
    RUNNING,
    USER_UNIT_SUBDIR,
    ProvisionOptions,
    ProvisionPaths,
    ProvisionResult,
    RemoteSession,
    TargetHost,
)
from .privilege import PrivilegeExecutor, run_command
from .remote_file import RemoteFileWriter
from .traefik import TraefikProvisioner, sanitize_acme_email

log = logging.getLogger("paasdeploy")

T = TypeVar("T")


class SSHProvisioner:
    """
    Turns a reachable Linux host into a container-hosting node running the
    agent, over a single SSH connection.

    provision() is idempotent: every step probes before it mutates, so a
    second run against a provisioned host only restarts the agent.
    """

    def __init__(
        self,
        issuer: CertificateIssuer,
        options: Optional[ProvisionOptions] = None,
        *,
        host_key_store: Optional[HostKeyStore] = None,
        bus: Optional[EventBus] = None,
        connect: Callable = open_ssh,
    ):
        self.issuer = issuer
        self.options = options or ProvisionOptions()
        self.host_key_store = host_key_store
        self.bus = bus or EventBus()
        self._connect = connect

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def provision(self, target: TargetHost, run_id: Optional[str] = None) -> ProvisionResult:
        progress = ProgressReporter(self.bus, target.server_id, run_id)
        result = ProvisionResult(server_id=target.server_id)
        log.info("[%s] provisioning %s@%s:%s", target.server_id, target.username, target.address, target.port)

        session: Optional[RemoteSession] = None
        try:
            acme_email = self._acme_email(progress)
            session = self._step(progress, "ssh_connect", "Connecting via SSH...", "Connected", "connect",
                                 lambda: self._open_session(target, result))
            self._step(progress, "remote_env", "Detecting remote user...", "Remote user detected",
                       "detect remote user", lambda: self._detect_identity(session))
            progress.line(f"Remote user {session.username} (uid {session.uid}), home {session.home or '?'}")

            privileged = PrivilegeExecutor(session.runner, session.uid, target.password)
            writer = RemoteFileWriter(session.runner, session.uid, target.password)

            DockerProvisioner(session.runner, privileged, progress).provision()
            NetworkProvisioner(privileged, progress).ensure()

            if acme_email:
                TraefikProvisioner(privileged, writer, progress).provision(acme_email)
            else:
                progress.line("No ACME email configured, skipping Traefik")

            session.sftp = self._step(progress, "sftp_client", "Opening SFTP...", "SFTP ready",
                                      "open sftp", session.runner.open_sftp)
            paths = self._step(progress, "install_dir", "Creating install directory...",
                               "Install directory ready", "create install dir",
                               lambda: resolve_paths(session.sftp, session.home, session.uid))
            result.paths = paths
            progress.line(f"Install directory: {paths.install_dir}")

            self._step(progress, "agent_certs", "Writing agent certificates...", "Certificates written",
                       "write certificates",
                       lambda: install_certificates(session.sftp, self.issuer, target, paths))

            if self.options.agent_binary_path:
                self._step(progress, "agent_binary", "Uploading agent binary...", "Agent binary uploaded",
                           "copy agent binary",
                           lambda: deploy_binary(session.runner, session.sftp, self.options.agent_binary_path, paths))
            else:
                progress.line("No agent binary configured, skipping upload")

            install_service(
                session.runner,
                session.sftp,
                paths,
                target.server_id,
                self.options.effective_backend_addr,
                self.options.effective_agent_port,
                username=session.username,
                progress=progress,
            )

        except ProvisionError as exc:
            log.error("[%s] provisioning failed: %s", target.server_id, exc)
            self._summary(progress, "provision", "FAILED", str(exc))
            raise
        finally:
            result.steps = list(progress.completed)
            if session is not None:
                session.close()

        log.info("[%s] provisioning complete", target.server_id)
        self._summary(progress, "provision", "OK")
        return result

    def deprovision(self, target: TargetHost, run_id: Optional[str] = None) -> None:
        """
        Stop and remove the agent. Only the connection is fatal; every
        removal step is best effort.
        """
        progress = ProgressReporter(self.bus, target.server_id, run_id)
        result = ProvisionResult(server_id=target.server_id)
        log.info("[%s] deprovisioning %s", target.server_id, target.address)

        session: Optional[RemoteSession] = None
        try:
            session = self._step(progress, "ssh_connect", "Connecting via SSH...", "Connected", "connect",
                                 lambda: self._open_session(target, result))
            self._attempt(progress, "remote_env", "Detecting remote user...", "Remote user detected",
                          lambda: self._detect_identity(session))

            paths = self._service_paths(session)
            if paths is not None:
                self._attempt(progress, "stop_agent", "Stopping agent...", "Agent stopped",
                              lambda: stop_service(session.runner, paths))
                self._attempt(progress, "remove_unit", "Removing systemd unit...", f"Removed {paths.unit_path}",
                              lambda: delete_unit(session.runner, paths))
            else:
                progress.line("Remote uid unknown, skipping systemd unit removal")

            for install_dir in self._candidate_install_dirs(session):
                self._attempt(progress, "remove_install_dir", f"Removing {install_dir}...", f"Removed {install_dir}",
                              lambda d=install_dir: run_command(session.runner, f"rm -rf {q(d)}"))
        except ProvisionError as exc:
            self._summary(progress, "deprovision", "FAILED", str(exc))
            raise
        finally:
            if session is not None:
                session.close()

        self._summary(progress, "deprovision", "OK")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _step(
        self,
        progress: ProgressReporter,
        step_id: str,
        running: str,
        done: str,
        operation: str,
        fn: Callable[[], T],
    ) -> T:
        progress.step(step_id, RUNNING, running)
        try:
            value = fn()
        except PaasDeployError as exc:
            progress.step(step_id, FAILED, str(exc))
            raise ProvisionError(operation, exc, step_id) from exc
        progress.step(step_id, OK, done)
        return value

    def _attempt(
        self,
        progress: ProgressReporter,
        step_id: str,
        running: str,
        done: str,
        fn: Callable[[], object],
    ) -> None:
        """Like _step, but a failure is reported and logged instead of raised."""
        progress.step(step_id, RUNNING, running)
        try:
            fn()
        except PaasDeployError as exc:
            log.warning("[%s] %s failed: %s", progress.ctx["server_id"], step_id, exc)
            progress.step(step_id, FAILED, str(exc))
        else:
            progress.step(step_id, OK, done)

    def _acme_email(self, progress: ProgressReporter) -> Optional[str]:
        if not self.options.acme_email:
            return None
        try:
            return sanitize_acme_email(self.options.acme_email)
        except ConfigValidationError as exc:
            progress.step("traefik_install", FAILED, str(exc))
            raise ProvisionError("validate traefik config", exc, "traefik_install") from exc

    def _open_session(self, target: TargetHost, result: ProvisionResult) -> RemoteSession:
        runner, observed = self._connect(
            target,
            host_key_store=self.host_key_store,
            connect_timeout=self.options.connect_timeout,
            attempts=self.options.connect_attempts,
            retry_delay=self.options.connect_retry_delay,
        )
        result.observed_host_key = observed
        return RemoteSession(runner=runner, username=target.username)

    @staticmethod
    def _detect_identity(session: RemoteSession) -> None:
        session.uid = run_command(session.runner, "id -u")
        session.username = run_command(session.runner, "id -un") or session.username
        home = run_command(session.runner, 'printf "%s" "$HOME"')
        session.home = home if home.startswith("/") else ""

    @staticmethod
    def _candidate_install_dirs(session: RemoteSession) -> list[str]:
        dirs = []
        if session.home:
            dirs.append(posixpath.join(session.home, AGENT_DIR_NAME))
        dirs.append(AGENT_DIR_NAME)
        return dirs

    @staticmethod
    def _service_paths(session: RemoteSession) -> Optional[ProvisionPaths]:
        if not session.uid:
            return None
        base = session.home
        return ProvisionPaths(
            install_dir=posixpath.join(base, AGENT_DIR_NAME) if base else AGENT_DIR_NAME,
            unit_dir=posixpath.join(base, USER_UNIT_SUBDIR) if base else USER_UNIT_SUBDIR,
            runtime_dir=f"/run/user/{session.uid}",
        )

    def _summary(self, progress: ProgressReporter, action: str, status: str, error: Optional[str] = None) -> None:
        self.bus.emit(ProvisionSummary(
            ts=now_ts(),
            action=action,
            status=status,
            error=error,
            **progress.ctx,
        ))
