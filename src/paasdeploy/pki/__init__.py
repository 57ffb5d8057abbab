# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/pki/__init__.py

from .ca import CAError, LocalCertificateAuthority

__all__ = ["CAError", "LocalCertificateAuthority"]
