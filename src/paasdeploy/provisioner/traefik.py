# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/provisioner/traefik.py

from __future__ import annotations

import logging
import re

import yaml

from paasdeploy.errors import ConfigValidationError, PaasDeployError, ProvisionError
from paasdeploy.observers.dispatcher import ProgressReporter
from paasdeploy.utils.command import q, sh

from .docker import DOCKER_NETWORK_NAME
from .models import FAILED, OK, RUNNING
from .privilege import PrivilegeExecutor
from .remote_file import RemoteFileWriter

log = logging.getLogger("paasdeploy")

TRAEFIK_CONTAINER = "traefik"
TRAEFIK_IMAGE = "traefik:v3.2"
TRAEFIK_DIR = "/opt/traefik"
TRAEFIK_ACME_DIR = "/opt/traefik/letsencrypt"
TRAEFIK_CONFIG_PATH = "/opt/traefik/traefik.yml"

TIMEOUT_TRAEFIK_SETUP = 300.0

_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")


def sanitize_acme_email(email: str) -> str:
    """Trim and validate the ACME account address. Raises ConfigValidationError."""
    cleaned = (email or "").strip()
    if not _EMAIL_RE.match(cleaned):
        raise ConfigValidationError(f"invalid ACME email address: {email!r}")
    return cleaned


def build_traefik_config(email: str) -> bytes:
    """Render the static traefik.yml for *email*."""
    email = sanitize_acme_email(email)
    config = {
        "entryPoints": {
            "web": {"address": ":80"},
            "websecure": {"address": ":443"},
            "grpc": {"address": ":50051"},
            "traefik": {"address": ":8081"},
        },
        "providers": {
            "docker": {
                "endpoint": "unix:///var/run/docker.sock",
                "exposedByDefault": False,
                "network": DOCKER_NETWORK_NAME,
            },
        },
        "certificatesResolvers": {
            "letsencrypt": {
                "acme": {
                    "email": email,
                    "storage": "/letsencrypt/acme.json",
                    "httpChallenge": {"entryPoint": "web"},
                },
            },
        },
        "api": {"dashboard": True},
        "log": {"level": "INFO"},
    }
    return yaml.safe_dump(config, sort_keys=False, default_flow_style=False).encode("utf-8")


def _run_args() -> list[str]:
    return [
        "docker", "run", "-d",
        "--name", TRAEFIK_CONTAINER,
        "--network", DOCKER_NETWORK_NAME,
        "--restart", "unless-stopped",
        "-p", "80:80",
        "-p", "443:443",
        "-p", "50051:50051",
        "-p", "8081:8081",
        "-v", "/var/run/docker.sock:/var/run/docker.sock:ro",
        "-v", f"{TRAEFIK_CONFIG_PATH}:/etc/traefik/traefik.yml:ro",
        "-v", f"{TRAEFIK_ACME_DIR}:/letsencrypt",
        TRAEFIK_IMAGE,
    ]


class TraefikProvisioner:
    """
    Keeps exactly one reverse-proxy container running the pinned image.
    """

    def __init__(self, privileged: PrivilegeExecutor, writer: RemoteFileWriter, progress: ProgressReporter):
        self.privileged = privileged
        self.writer = writer
        self.progress = progress

    def _inspect(self, fmt: str) -> str:
        return self.privileged.run(f"docker inspect {q(TRAEFIK_CONTAINER)} --format {q(fmt)}")

    def is_current(self) -> bool:
        try:
            if self._inspect("{{.State.Running}}") != "true":
                return False
            image = self._inspect("{{.Config.Image}}")
        except PaasDeployError:
            return False
        if image != TRAEFIK_IMAGE:
            self.progress.line(f"Traefik runs {image}, upgrading to {TRAEFIK_IMAGE}")
            return False
        return True

    def provision(self, acme_email: str) -> None:
        self.progress.step("traefik_check", RUNNING, "Checking Traefik...")

        if self.is_current():
            self.progress.line(f"Traefik {TRAEFIK_IMAGE} already running")
            self.progress.step("traefik_check", OK, "Traefik running")
            return

        self.progress.step("traefik_check", OK, "Traefik needs install")
        self.progress.step("traefik_install", RUNNING, "Installing Traefik...")

        try:
            config = build_traefik_config(acme_email)
        except ConfigValidationError as exc:
            self.progress.step("traefik_install", FAILED, str(exc))
            raise ProvisionError("validate traefik config", exc, "traefik_install") from exc

        try:
            self.privileged.run(sh("mkdir", "-p", TRAEFIK_DIR, TRAEFIK_ACME_DIR))
            self.writer.write(TRAEFIK_CONFIG_PATH, config)
        except PaasDeployError as exc:
            self.progress.step("traefik_install", FAILED, str(exc))
            raise ProvisionError("write traefik config", exc, "traefik_install") from exc
        self.progress.line(f"Wrote {TRAEFIK_CONFIG_PATH}")

        self._remove_existing()

        self.progress.line(f"Pulling {TRAEFIK_IMAGE}")
        try:
            self.privileged.run(sh("docker", "pull", TRAEFIK_IMAGE), timeout=TIMEOUT_TRAEFIK_SETUP)
        except PaasDeployError as exc:
            # docker run pulls on its own if this did not
            log.warning("[traefik] pull failed: %s", exc)
            self.progress.line(f"Pull failed, continuing: {exc}")

        try:
            self.privileged.run(sh(*_run_args()), timeout=TIMEOUT_TRAEFIK_SETUP)
        except PaasDeployError as exc:
            self.progress.step("traefik_install", FAILED, str(exc))
            raise ProvisionError("start traefik", exc, "traefik_install") from exc

        self.progress.line(f"Traefik {TRAEFIK_IMAGE} started")
        self.progress.step("traefik_install", OK, "Traefik installed")

    def _remove_existing(self) -> None:
        for cmd in (
            sh("docker", "stop", TRAEFIK_CONTAINER),
            sh("docker", "rm", TRAEFIK_CONTAINER),
        ):
            try:
                self.privileged.run(cmd, timeout=TIMEOUT_TRAEFIK_SETUP)
            except PaasDeployError as exc:
                log.debug("[traefik] %s: %s", cmd, exc)
