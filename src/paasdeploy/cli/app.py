# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/cli/app.py
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional

import typer

from paasdeploy.config.loader import load_config
from paasdeploy.config.models import HostSpec, PaasDeployConfig
from paasdeploy.errors import PaasDeployError
from paasdeploy.logging.log import init_logging
from paasdeploy.observers.console import ConsoleObserver
from paasdeploy.observers.dispatcher import EventBus
from paasdeploy.observers.jsonfile import JsonFileObserver
from paasdeploy.pki.ca import LocalCertificateAuthority
from paasdeploy.provisioner.models import TargetHost
from paasdeploy.provisioner.ssh_provisioner import SSHProvisioner
from paasdeploy.store.host_keys import JsonHostKeyStore


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="paasdeploy host provisioning CLI")

LOG_DIR = Path.home() / ".paasdeploy" / "logs"


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _load(config: Path) -> PaasDeployConfig:
    try:
        return load_config(config)
    except (PaasDeployError, OSError) as exc:
        typer.secho(f"Config error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _ca(cfg: PaasDeployConfig) -> LocalCertificateAuthority:
    return LocalCertificateAuthority(cfg.ca.cert_path, cfg.ca.key_path, cfg.ca.validity_days)


def _bus(run_id: str, *, quiet_lines: bool = False) -> EventBus:
    return EventBus(
        observers=[
            ConsoleObserver(show_lines=not quiet_lines),
            JsonFileObserver(LOG_DIR / f"{run_id}.jsonl"),
        ]
    )


def _target(spec: HostSpec, store: JsonHostKeyStore, password: Optional[str]) -> TargetHost:
    try:
        target = spec.to_target(host_key=store.get(spec.server_id))
    except OSError as exc:
        raise PaasDeployError(f"read private key for {spec.server_id}: {exc}") from exc
    if password and not target.password:
        target = TargetHost(
            server_id=target.server_id,
            address=target.address,
            username=target.username,
            port=target.port,
            private_key=target.private_key,
            password=password,
            host_key=target.host_key,
        )
    return target


def _secrets(cfg: PaasDeployConfig, password: Optional[str]) -> List[str]:
    return [s for s in [password, *(h.password for h in cfg.hosts)] if s]


def _host(cfg: PaasDeployConfig, server_id: str) -> HostSpec:
    try:
        return cfg.host(server_id)
    except KeyError:
        known = ", ".join(h.server_id for h in cfg.hosts) or "none"
        raise typer.BadParameter(f"unknown server id {server_id!r} (configured: {known})")


def _banner(title: str, run_id: str, log_path: Path) -> None:
    typer.echo("")
    typer.secho(title, bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Log file : {log_path}")
    typer.echo("")


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command("init-ca")
def init_ca(
    config: Path = typer.Argument(..., help="paasdeploy YAML config"),
    force: bool = typer.Option(False, "--force", help="Replace an existing CA"),
    validity_days: int = typer.Option(3650, "--validity-days"),
):
    """Create the local CA that signs agent certificates."""
    cfg = _load(config)
    ca = _ca(cfg)
    try:
        ca.init(force=force, validity_days=validity_days)
    except PaasDeployError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.secho(f"CA written to {ca.cert_path}", fg=typer.colors.GREEN)


@app.command()
def provision(
    config: Path = typer.Argument(..., help="paasdeploy YAML config"),
    server_id: str = typer.Argument(..., help="Host to provision (server_id from config)"),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="PAASDEPLOY_SSH_PASSWORD", help="SSH / sudo password"
    ),
    debug: bool = typer.Option(False, "--debug"),
):
    """Provision one host: Docker, network, Traefik, agent."""
    cfg = _load(config)
    spec = _host(cfg, server_id)
    logger, run_id, log_path = init_logging(base_dir=LOG_DIR, verbose=debug, secrets=_secrets(cfg, password))
    _banner("paasdeploy provision", run_id, log_path)

    store = JsonHostKeyStore(cfg.host_key_store)
    provisioner = SSHProvisioner(
        _ca(cfg),
        cfg.provisioner.to_options(),
        host_key_store=store,
        bus=_bus(run_id),
    )

    try:
        result = provisioner.provision(_target(spec, store, password), run_id=run_id)
    except PaasDeployError as exc:
        typer.secho(f"\nProvisioning failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho(f"\n{server_id} provisioned ({result.paths.install_dir if result.paths else '?'})",
                fg=typer.colors.GREEN, bold=True)


@app.command()
def deprovision(
    config: Path = typer.Argument(..., help="paasdeploy YAML config"),
    server_id: str = typer.Argument(..., help="Host to clean up (server_id from config)"),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="PAASDEPLOY_SSH_PASSWORD", help="SSH / sudo password"
    ),
    forget_host_key: bool = typer.Option(False, "--forget-host-key", help="Drop the pinned host key afterwards"),
    debug: bool = typer.Option(False, "--debug"),
):
    """Stop the agent and remove its files. Docker and Traefik are left in place."""
    cfg = _load(config)
    spec = _host(cfg, server_id)
    logger, run_id, log_path = init_logging(base_dir=LOG_DIR, verbose=debug, secrets=_secrets(cfg, password))
    _banner("paasdeploy deprovision", run_id, log_path)

    store = JsonHostKeyStore(cfg.host_key_store)
    provisioner = SSHProvisioner(
        _ca(cfg),
        cfg.provisioner.to_options(),
        host_key_store=store,
        bus=_bus(run_id),
    )

    try:
        provisioner.deprovision(_target(spec, store, password), run_id=run_id)
    except PaasDeployError as exc:
        typer.secho(f"\nDeprovisioning failed: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    if forget_host_key:
        try:
            if store.forget(server_id):
                typer.echo(f"Forgot pinned host key for {server_id}")
        except PaasDeployError as exc:
            typer.secho(f"\nCould not forget host key: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
    typer.secho(f"\n{server_id} deprovisioned", fg=typer.colors.GREEN, bold=True)


@app.command("provision-all")
def provision_all(
    config: Path = typer.Argument(..., help="paasdeploy YAML config"),
    parallel: Optional[int] = typer.Option(None, "--parallel", min=1, help="Overrides max_parallel"),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="PAASDEPLOY_SSH_PASSWORD", help="SSH / sudo password"
    ),
    debug: bool = typer.Option(False, "--debug"),
):
    """Provision every configured host, several at a time."""
    cfg = _load(config)
    if not cfg.hosts:
        typer.secho("No hosts configured", fg=typer.colors.YELLOW)
        raise typer.Exit(code=0)

    logger, run_id, log_path = init_logging(base_dir=LOG_DIR, verbose=debug, secrets=_secrets(cfg, password))
    _banner("paasdeploy provision-all", run_id, log_path)

    store = JsonHostKeyStore(cfg.host_key_store)
    bus = _bus(run_id, quiet_lines=True)
    ca = _ca(cfg)
    options = cfg.provisioner.to_options()
    workers = parallel or cfg.max_parallel

    failures: Dict[str, str] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="provision") as pool:
        futures = {}
        for spec in cfg.hosts:
            provisioner = SSHProvisioner(ca, options, host_key_store=store, bus=bus)
            try:
                target = _target(spec, store, password)
            except PaasDeployError as exc:
                failures[spec.server_id] = str(exc)
                continue
            futures[pool.submit(provisioner.provision, target, run_id)] = spec.server_id

        for fut in as_completed(futures):
            sid = futures[fut]
            try:
                fut.result()
            except PaasDeployError as exc:
                failures[sid] = str(exc)

    ok: List[str] = [h.server_id for h in cfg.hosts if h.server_id not in failures]
    typer.echo("")
    for sid in ok:
        typer.secho(f"  OK      {sid}", fg=typer.colors.GREEN)
    for sid, err in failures.items():
        typer.secho(f"  FAILED  {sid}: {err}", fg=typer.colors.RED)

    if failures:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
