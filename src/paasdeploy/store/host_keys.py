# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/store/host_keys.py

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from paasdeploy.errors import PaasDeployError

log = logging.getLogger("paasdeploy")


class HostKeyStoreError(PaasDeployError):
    pass


class JsonHostKeyStore:
    """
    server_id -> "<type> <base64>" map persisted as one JSON object.

    Safe to share between the worker threads of one process.
    """

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise HostKeyStoreError(f"cannot read host key store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise HostKeyStoreError(f"host key store {self.path} must hold a JSON object")
        return data

    def get(self, server_id: str) -> Optional[str]:
        with self._lock:
            return self._read().get(server_id)

    def save(self, server_id: str, host_key: str) -> None:
        with self._lock:
            data = self._read()
            data[server_id] = host_key
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n")
            os.replace(tmp, self.path)
        log.debug("pinned host key for %s", server_id)

    def forget(self, server_id: str) -> bool:
        with self._lock:
            data = self._read()
            if data.pop(server_id, None) is None:
                return False
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n")
            os.replace(tmp, self.path)
        return True
