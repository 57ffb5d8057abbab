# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/pki/ca.py

from __future__ import annotations

import ipaddress
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from paasdeploy.errors import PaasDeployError
from paasdeploy.provisioner.models import CertificateBundle

log = logging.getLogger("paasdeploy")

CA_COMMON_NAME = "paasdeploy agent CA"
ORGANIZATION = "paasdeploy"


class CAError(PaasDeployError):
    """The local CA is missing or unreadable."""


def _key_pem(key: ec.EllipticCurvePrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _san_for(host: str) -> x509.GeneralName:
    try:
        return x509.IPAddress(ipaddress.ip_address(host))
    except ValueError:
        return x509.DNSName(host)


class LocalCertificateAuthority:
    """
    File-backed CA that signs one client/server certificate per agent.

    A fresh key pair is generated on every call; nothing is cached.
    """

    def __init__(self, cert_path: Path, key_path: Path, validity_days: int = 365):
        self.cert_path = Path(cert_path).expanduser()
        self.key_path = Path(key_path).expanduser()
        self.validity_days = validity_days
        self._ca_cert: Optional[x509.Certificate] = None
        self._ca_key: Optional[ec.EllipticCurvePrivateKey] = None

    # ------------------------------------------------------------------
    def exists(self) -> bool:
        return self.cert_path.is_file() and self.key_path.is_file()

    def init(self, *, force: bool = False, validity_days: int = 3650) -> None:
        """Create the CA key pair and self-signed certificate."""
        if self.exists() and not force:
            raise CAError(f"CA already exists at {self.cert_path} (use --force to replace)")

        key = ec.generate_private_key(ec.SECP256R1())
        name = x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, CA_COMMON_NAME),
        ])
        now = datetime.now(timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True, content_commitment=False, key_encipherment=False,
                    data_encipherment=False, key_agreement=False, key_cert_sign=True,
                    crl_sign=True, encipher_only=False, decipher_only=False,
                ),
                critical=True,
            )
            .sign(private_key=key, algorithm=hashes.SHA256())
        )

        self.cert_path.parent.mkdir(parents=True, exist_ok=True)
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        self.cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
        fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            fh.write(_key_pem(key))

        self._ca_cert, self._ca_key = cert, key
        log.info("CA created: %s", self.cert_path)

    def _load(self) -> tuple[x509.Certificate, ec.EllipticCurvePrivateKey]:
        if self._ca_cert is None or self._ca_key is None:
            if not self.exists():
                raise CAError(f"CA not found at {self.cert_path} (run `paasdeploy init-ca`)")
            try:
                self._ca_cert = x509.load_pem_x509_certificate(self.cert_path.read_bytes())
                self._ca_key = serialization.load_pem_private_key(self.key_path.read_bytes(), password=None)
            except ValueError as exc:
                raise CAError(f"unreadable CA material: {exc}") from exc
        return self._ca_cert, self._ca_key

    # ------------------------------------------------------------------
    def issue_agent_certificate(self, server_id: str, host: str) -> CertificateBundle:
        ca_cert, ca_key = self._load()

        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.now(timezone.utc)
        sans = [x509.DNSName(server_id)]
        if host and host != server_id:
            sans.append(_san_for(host))

        cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([
                x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
                x509.NameAttribute(NameOID.COMMON_NAME, server_id),
            ]))
            .issuer_name(ca_cert.subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=self.validity_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(x509.SubjectAlternativeName(sans), critical=False)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH, ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .sign(private_key=ca_key, algorithm=hashes.SHA256())
        )

        log.debug("issued agent certificate for %s (serial %x)", server_id, cert.serial_number)
        return CertificateBundle(
            ca_pem=ca_cert.public_bytes(serialization.Encoding.PEM),
            cert_pem=cert.public_bytes(serialization.Encoding.PEM),
            key_pem=_key_pem(key),
        )
