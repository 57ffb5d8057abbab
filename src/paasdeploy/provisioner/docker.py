# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/docker.py

from __future__ import annotations

import logging

from paasdeploy.errors import PaasDeployError, ProvisionError
from paasdeploy.observers.dispatcher import ProgressReporter
from paasdeploy.utils.command import q, sh

from .interface import RemoteExecutor
from .models import FAILED, OK, RUNNING
from .privilege import PrivilegeExecutor, command_succeeds, run_command

log = logging.getLogger("paasdeploy")

DOCKER_NETWORK_NAME = "paasdeploy"
DOCKER_INSTALL_SCRIPT = "curl -fsSL https://get.docker.com | sh"
COMPOSE_PLUGIN_PKG = "docker-compose-plugin"
BUILDX_PLUGIN_PKG = "docker-buildx-plugin"

TIMEOUT_DOCKER_INSTALL = 600.0
TIMEOUT_DOCKER_CHECK = 30.0
TIMEOUT_NETWORK_SETUP = 30.0


class DockerProvisioner:
    """
    unknown -> {installed, not-installed} -> daemon-active -> plugins-present
    """

    def __init__(self, executor: RemoteExecutor, privileged: PrivilegeExecutor, progress: ProgressReporter):
        self.executor = executor
        self.privileged = privileged
        self.progress = progress

    # ------------------------------------------------------------------
    def provision(self) -> None:
        self.progress.step("docker_check", RUNNING, "Checking Docker...")
        self.progress.line("Checking whether Docker is installed")

        try:
            version = run_command(self.executor, "docker --version")
        except PaasDeployError:
            version = None

        if version is not None:
            self.progress.line(f"Docker found: {version}")
            self.progress.step("docker_check", OK, "Docker found")
        else:
            self.progress.step("docker_check", OK, "Docker not found")
            self._install()

        self.ensure_running()
        self.ensure_plugins()

    # ------------------------------------------------------------------
    def _install(self) -> None:
        self.progress.step("docker_install", RUNNING, "Installing Docker...")
        self.progress.line("Docker not found, installing via get.docker.com")

        try:
            self.privileged.run(DOCKER_INSTALL_SCRIPT, timeout=TIMEOUT_DOCKER_INSTALL)
        except PaasDeployError as exc:
            self.progress.step("docker_install", FAILED, str(exc))
            raise ProvisionError("install docker", exc, "docker_install") from exc

        self.progress.line("Docker installed")
        self.progress.step("docker_install", OK, "Docker installed")

        if not self.privileged.is_root:
            self._add_user_to_docker_group()

    def _add_user_to_docker_group(self) -> None:
        try:
            user = run_command(self.executor, "whoami")
            if not user:
                return
            self.privileged.run(sh("usermod", "-aG", "docker", user))
            self.progress.line(f"Added {user} to the docker group")
        except PaasDeployError as exc:
            self.progress.line(f"Could not add user to docker group: {exc}")

    # ------------------------------------------------------------------
    def ensure_running(self) -> None:
        self.progress.step("docker_start", RUNNING, "Checking Docker daemon...")

        try:
            state = self.privileged.run("systemctl is-active docker")
        except PaasDeployError:
            state = ""

        if state == "active":
            self.progress.line("Docker daemon is active")
            self.progress.step("docker_start", OK, "Docker daemon active")
            return

        self.progress.line("Starting Docker daemon")
        try:
            self.privileged.run("systemctl start docker && systemctl enable docker", timeout=TIMEOUT_DOCKER_CHECK)
        except PaasDeployError as exc:
            self.progress.step("docker_start", FAILED, str(exc))
            raise ProvisionError("start docker daemon", exc, "docker_start") from exc

        self.progress.line("Docker daemon started and enabled")
        self.progress.step("docker_start", OK, "Docker daemon started")

    # ------------------------------------------------------------------
    def ensure_plugins(self) -> None:
        need_compose = not command_succeeds(self.executor, "docker compose version")
        need_buildx = not command_succeeds(self.executor, "docker buildx version")

        if not need_compose and not need_buildx:
            self.progress.line("Docker Compose and Buildx already available")
            return

        self.progress.step("docker_plugins", RUNNING, "Installing Docker plugins...")

        packages = []
        if need_compose:
            packages.append(COMPOSE_PLUGIN_PKG)
        if need_buildx:
            packages.append(BUILDX_PLUGIN_PKG)

        self.progress.line(f"Installing {', '.join(packages)}")
        install_cmd = (
            "apt-get update -qq && "
            f"DEBIAN_FRONTEND=noninteractive apt-get install -y -qq {' '.join(q(p) for p in packages)}"
        )
        try:
            self.privileged.run(install_cmd, timeout=TIMEOUT_DOCKER_INSTALL)
        except PaasDeployError as exc:
            if need_compose:
                self.progress.step("docker_plugins", FAILED, str(exc))
                raise ProvisionError("install docker plugins", exc, "docker_plugins") from exc
            self.progress.line("Buildx install failed, builds will use the legacy builder")
            log.warning("[docker] buildx plugin install failed: %s", exc)

        self.progress.step("docker_plugins", OK, "Docker plugins installed")


class NetworkProvisioner:
    """Check-then-create for the shared container network."""

    def __init__(self, privileged: PrivilegeExecutor, progress: ProgressReporter, name: str = DOCKER_NETWORK_NAME):
        self.privileged = privileged
        self.progress = progress
        self.name = name

    def ensure(self) -> None:
        self.progress.step("docker_network", RUNNING, "Checking Docker network...")
        self.progress.line(f"Checking network {self.name}")

        if self.privileged.succeeds(f"docker network inspect {q(self.name)} > /dev/null 2>&1"):
            self.progress.line(f"Network {self.name} already exists")
            self.progress.step("docker_network", OK, "Docker network found")
            return

        self.progress.line(f"Creating network {self.name}")
        try:
            self.privileged.run(f"docker network create {q(self.name)}", timeout=TIMEOUT_NETWORK_SETUP)
        except PaasDeployError as exc:
            if "already exists" not in str(exc):
                self.progress.step("docker_network", FAILED, str(exc))
                raise ProvisionError(f"create docker network {self.name}", exc, "docker_network") from exc
            self.progress.line(f"Network {self.name} was created concurrently")

        self.progress.line(f"Network {self.name} created")
        self.progress.step("docker_network", OK, "Docker network ready")
