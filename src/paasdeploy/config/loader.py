# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/config/loader.py

import logging
import os
import yaml
from pathlib import Path

from pydantic import ValidationError

from paasdeploy.errors import ConfigValidationError
from .models import PaasDeployConfig

log = logging.getLogger("paasdeploy")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).

    Empty override values never clobber config. Lists of mappings that carry
    a ``server_id`` (the hosts list) are merged entry by entry.
    """
    for key, value in override.items():
        current = base.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            _deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list) and _keyed(value):
            _merge_by_server_id(current, value)
        elif value not in (None, ""):
            base[key] = value
    return base


def _keyed(items: list) -> bool:
    return bool(items) and all(isinstance(i, dict) and "server_id" in i for i in items)


def _merge_by_server_id(base: list, override: list) -> None:
    by_id = {h.get("server_id"): h for h in base if isinstance(h, dict)}
    for entry in override:
        sid = entry["server_id"]
        if sid in by_id:
            _deep_merge(by_id[sid], entry)
        else:
            log.warning("secrets.yaml has host %s which is not in the config, skipping", sid)


SECRETS_ENV = "PAASDEPLOY_SECRETS_FILE"


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    $PAASDEPLOY_SECRETS_FILE when set (and only that), otherwise a
    secrets.yaml beside the config.
    """
    explicit = os.environ.get(SECRETS_ENV)
    candidate = Path(explicit) if explicit else config_path.parent / "secrets.yaml"
    if candidate.is_file():
        return candidate
    if explicit:
        log.warning("%s=%s does not exist, ignoring it", SECRETS_ENV, explicit)
    return None


def _load_yaml(path: Path) -> dict:
    """Read one YAML mapping with ${ENV_VAR} references expanded."""
    try:
        doc = yaml.safe_load(os.path.expandvars(path.read_text(encoding="utf-8")))
    except OSError as exc:
        raise ConfigValidationError(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"{path} is not valid YAML: {exc}") from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ConfigValidationError(f"{path}: top level must be a mapping, got {type(doc).__name__}")
    return doc


def load_config(path: str | Path) -> PaasDeployConfig:
    """
    Load and validate a paasdeploy YAML config.

    Secrets (SSH passwords, key paths) can live in a ``secrets.yaml`` whose
    structure mirrors the config; host entries are matched by ``server_id``.
    ``${ENV_VAR}`` placeholders in either file are expanded at load time.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        secrets = _load_yaml(secrets_path)
        _deep_merge(data, secrets)
    else:
        log.debug("no secrets file for %s", path.name)

    try:
        return PaasDeployConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigValidationError(f"invalid config {path}: {exc}") from exc
