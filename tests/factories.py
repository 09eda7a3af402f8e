from __future__ import annotations

import base64
import plistlib
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import (
    BestAvailableEncryption,
    Encoding,
    NoEncryption,
    PrivateFormat,
    pkcs12,
)
from cryptography.x509.oid import NameOID

from appcreds.authority import Session
from appcreds.credentials import AppCredentialBundle
from appcreds.params import distribution_certificate_from_pem
from appcreds.prompts import Prompter

TEAM_ID = "TEAM123456"
EXPERIENCE = "@acme/app"
BUNDLE_ID = "com.acme.app"

_CA_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)


def issue_certificate(public_key, *, common_name: str = "Acme Distribution") -> x509.Certificate:
    now = datetime.now(timezone.utc)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Test Authority")])
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .sign(_CA_KEY, hashes.SHA256())
    )


def make_certificate() -> tuple[x509.Certificate, rsa.RSAPrivateKey]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return issue_certificate(key.public_key()), key


def make_dist_cert_artifact(*, remote_id: str | None = None):
    certificate, key = make_certificate()
    artifact = distribution_certificate_from_pem(
        certificate.public_bytes(Encoding.PEM).decode("ascii"),
        key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()).decode("ascii"),
        team_id=TEAM_ID,
        remote_id=remote_id,
    )
    return artifact, certificate


def write_p12(path: Path, *, password: bytes = b"p12-secret") -> tuple[Path, x509.Certificate]:
    certificate, key = make_certificate()
    path.write_bytes(
        pkcs12.serialize_key_and_certificates(
            b"distribution",
            key,
            certificate,
            None,
            BestAvailableEncryption(password),
        )
    )
    return path, certificate


def make_p8_pem() -> str:
    key = ec.generate_private_key(ec.SECP256R1())
    return key.private_bytes(Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()).decode("ascii")


def write_p8(path: Path) -> Path:
    path.write_text(make_p8_pem(), encoding="ascii")
    return path


def make_profile_bytes(
    certificate: x509.Certificate,
    *,
    uuid: str = "6F1C2A3B-0000-4000-8000-000000000001",
    team_id: str = TEAM_ID,
) -> bytes:
    plist = plistlib.dumps(
        {
            "UUID": uuid,
            "Name": "Acme App Store",
            "TeamIdentifier": [team_id],
            "ExpirationDate": datetime(2030, 1, 1),
            "DeveloperCertificates": [certificate.public_bytes(Encoding.DER)],
            "ProvisionedDevices": [],
        }
    )
    # Signed profiles wrap the plist in a CMS envelope.
    return b"0\x82\x1f\x00cms-header" + plist + b"\x00cms-trailer"


class FakeAuthority:
    """Remote authority double that records every call."""

    def __init__(self) -> None:
        self.session = Session(token="session-token", team_id=TEAM_ID, team_name="Acme")
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        self.apps: dict[str, dict] = {}
        self.certificates: list[dict] = []
        self.push_keys: list[dict] = []
        self.profiles: list[dict] = []
        self.known_certificates: dict[str, x509.Certificate] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def register_certificate(self, certificate: x509.Certificate) -> None:
        self.known_certificates[format(certificate.serial_number, "X")] = certificate

    def authenticate(self, params):
        self._record("authenticate", params)
        return self.session

    def ensure_app_registered(self, session, experience_name, bundle_identifier, capabilities=()):
        self._record("ensure_app_registered", bundle_identifier, tuple(capabilities))
        app = self.apps.setdefault(
            bundle_identifier, {"bundle_identifier": bundle_identifier, "capabilities": []}
        )
        for capability in capabilities:
            if capability not in app["capabilities"]:
                app["capabilities"].append(capability)
        return app

    def list_distribution_certificates(self, session):
        self._record("list_distribution_certificates")
        return list(self.certificates)

    def create_distribution_certificate(self, session, csr_pem):
        self._record("create_distribution_certificate")
        csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
        certificate = issue_certificate(csr.public_key())
        self.register_certificate(certificate)
        record = {
            "id": f"remote-cert-{len(self.certificates) + 1}",
            "serial_number": format(certificate.serial_number, "X"),
            "certificate_pem": certificate.public_bytes(Encoding.PEM).decode("ascii"),
        }
        self.certificates.append(record)
        return record

    def revoke_distribution_certificate(self, session, certificate_id):
        self._record("revoke_distribution_certificate", certificate_id)
        self.certificates = [c for c in self.certificates if c["id"] != certificate_id]

    def list_push_keys(self, session):
        self._record("list_push_keys")
        return list(self.push_keys)

    def create_push_key(self, session, name):
        self._record("create_push_key", name)
        record = {
            "id": f"remote-key-{len(self.push_keys) + 1}",
            "key_id": f"KEY{len(self.push_keys) + 1:07d}",
            "key_p8": make_p8_pem(),
        }
        self.push_keys.append(record)
        return record

    def revoke_push_key(self, session, key_id):
        self._record("revoke_push_key", key_id)
        self.push_keys = [k for k in self.push_keys if k["id"] != key_id]

    def list_provisioning_profiles(self, session, bundle_identifier):
        self._record("list_provisioning_profiles", bundle_identifier)
        return [p for p in self.profiles if p["bundle_identifier"] == bundle_identifier]

    def create_provisioning_profile(self, session, bundle_identifier, certificate_serial):
        self._record("create_provisioning_profile", bundle_identifier, certificate_serial)
        certificate = self.known_certificates[certificate_serial]
        uuid = f"6F1C2A3B-0000-4000-8000-{len(self.profiles) + 1:012d}"
        record = {
            "id": f"remote-profile-{len(self.profiles) + 1}",
            "bundle_identifier": bundle_identifier,
            "profile_b64": base64.b64encode(make_profile_bytes(certificate, uuid=uuid)).decode(
                "ascii"
            ),
        }
        self.profiles.append(record)
        return record

    def revoke_provisioning_profile(self, session, profile_id):
        self._record("revoke_provisioning_profile", profile_id)
        self.profiles = [p for p in self.profiles if p["id"] != profile_id]


class ScriptedPrompter(Prompter):
    """Answers prompts from a fixed script, failing loudly when it runs dry."""

    def __init__(self, *answers) -> None:
        self.answers = list(answers)
        self.messages: list[str] = []

    def _next(self, message: str):
        self.messages.append(message)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {message}")
        return self.answers.pop(0)

    def confirm(self, message: str, *, default: bool = True) -> bool:
        return bool(self._next(message))

    def text(self, message: str, *, default: str | None = None) -> str:
        return str(self._next(message))

    def secret(self, message: str) -> str:
        return str(self._next(message))


class RecordingReporter:
    def __init__(self) -> None:
        self.reports: list[AppCredentialBundle] = []

    def __call__(self, bundle: AppCredentialBundle) -> None:
        self.reports.append(bundle)


__all__ = [
    "BUNDLE_ID",
    "EXPERIENCE",
    "TEAM_ID",
    "FakeAuthority",
    "RecordingReporter",
    "ScriptedPrompter",
    "issue_certificate",
    "make_certificate",
    "make_dist_cert_artifact",
    "make_p8_pem",
    "make_profile_bytes",
    "write_p12",
    "write_p8",
]
