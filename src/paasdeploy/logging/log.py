# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/logging/log.py

from __future__ import annotations

import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Iterable, Set
import uuid

# Noisy at DEBUG: every packet and cipher negotiation.
_QUIET_LOGGERS = ("paramiko", "paramiko.transport", "paramiko.transport.sftp")

REDACTED = "******"


class SecretRedactor(logging.Filter):
    """
    Masks registered secrets (SSH / sudo passwords) in every record that
    passes through a handler.
    """

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self._secrets: Set[str] = {s for s in secrets if s}

    def add(self, secret: str | None) -> None:
        if secret:
            self._secrets.add(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        msg = record.getMessage()
        for s in self._secrets:
            msg = msg.replace(s, REDACTED)
        record.msg, record.args = msg, None
        return True


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "paasdeploy",
    verbose: bool = False,
    secrets: Iterable[str] = (),
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - full-trace log file (every remote command at DEBUG)
      - console handler at INFO, DEBUG with --debug
      - a redaction filter on both, seeded with *secrets*
      - returns run_id so observers can reuse it
    """
    run_id = str(uuid.uuid4())

    if base_dir is None:
        base_dir = Path.home() / ".paasdeploy" / "logs"
    base_dir.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = base_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    redactor = SecretRedactor(secrets)

    handlers = [
        (logging.FileHandler(log_path, encoding="utf-8"), logging.DEBUG),
        (logging.StreamHandler(), logging.DEBUG if verbose else logging.INFO),
    ]
    for handler, level in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        logger.addHandler(handler)

    for noisy in _QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)

    logger.info("=== paasdeploy run started (run_id=%s) ===", run_id)
    logger.debug("log_file=%s", log_path)

    return logger, run_id, log_path
