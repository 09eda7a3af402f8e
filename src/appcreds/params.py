"""Load ready-made credential artifacts supplied as command parameters."""

from __future__ import annotations

import base64
import plistlib
from dataclasses import dataclass
from datetime import timezone
from pathlib import Path
from typing import Any

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    load_pem_private_key,
    pkcs12,
)

from appcreds.credentials import DistributionCertificate, ProvisioningProfile, PushKey
from appcreds.errors import CredentialValidationError


def _read_file(path: str | Path, label: str) -> bytes:
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise CredentialValidationError(f"{label} file not found: {file_path}")
    return file_path.read_bytes()


def certificate_sha1(certificate: x509.Certificate) -> str:
    return certificate.fingerprint(hashes.SHA1()).hex().upper()


def distribution_certificate_from_pem(
    certificate_pem: str,
    private_key_pem: str,
    *,
    team_id: str | None = None,
    remote_id: str | None = None,
) -> DistributionCertificate:
    try:
        certificate = x509.load_pem_x509_certificate(certificate_pem.encode("ascii"))
    except ValueError as exc:
        raise CredentialValidationError("distribution certificate is not valid PEM") from exc
    return DistributionCertificate(
        id=format(certificate.serial_number, "X"),
        certificate_pem=certificate_pem,
        private_key_pem=private_key_pem,
        sha1_fingerprint=certificate_sha1(certificate),
        team_id=team_id,
        expires_at=certificate.not_valid_after_utc.isoformat(),
        remote_id=remote_id,
    )


def dist_cert_from_params(
    *,
    p12_path: str | None,
    password: str | None,
    team_id: str | None,
) -> DistributionCertificate | None:
    """Adopt a PKCS#12 distribution certificate; ``None`` when no path was given."""
    if not p12_path:
        return None
    if not team_id:
        raise CredentialValidationError("--team-id is required together with --dist-p12-path")
    data = _read_file(p12_path, "distribution certificate")
    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(
            data,
            password.encode("utf-8") if password else None,
        )
    except ValueError as exc:
        raise CredentialValidationError(
            "could not open distribution certificate; check APPCREDS_DIST_P12_PASSWORD"
        ) from exc
    if certificate is None or private_key is None:
        raise CredentialValidationError("PKCS#12 file must contain a certificate and its key")

    certificate_pem = certificate.public_bytes(Encoding.PEM).decode("ascii")
    private_key_pem = private_key.private_bytes(
        Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
    ).decode("ascii")
    return distribution_certificate_from_pem(certificate_pem, private_key_pem, team_id=team_id)


def push_key_from_params(
    *,
    p8_path: str | None,
    key_id: str | None,
    team_id: str | None,
) -> PushKey | None:
    if not p8_path:
        return None
    if not key_id or not team_id:
        raise CredentialValidationError(
            "--push-id and --team-id are required together with --push-p8-path"
        )
    data = _read_file(p8_path, "push key")
    try:
        private_key = load_pem_private_key(data, password=None)
    except (TypeError, ValueError) as exc:
        raise CredentialValidationError(f"push key is not a valid .p8 file: {p8_path}") from exc
    if not isinstance(private_key, ec.EllipticCurvePrivateKey):
        raise CredentialValidationError("push key must be an elliptic curve private key")
    return PushKey(id=key_id, key_p8=data.decode("ascii"), team_id=team_id)


def parse_profile_plist(data: bytes) -> dict[str, Any]:
    """Extract the property list embedded in a signed ``.mobileprovision`` blob."""
    start = data.find(b"<?xml")
    end = data.find(b"</plist>")
    if start < 0 or end < 0:
        raise CredentialValidationError("provisioning profile does not contain a property list")
    try:
        payload = plistlib.loads(data[start : end + len(b"</plist>")])
    except Exception as exc:
        raise CredentialValidationError("provisioning profile property list is invalid") from exc
    if not isinstance(payload, dict):
        raise CredentialValidationError("provisioning profile property list must be a dict")
    return payload


def profile_certificate_sha1s(payload: dict[str, Any]) -> list[str]:
    out: list[str] = []
    for der in payload.get("DeveloperCertificates") or []:
        if not isinstance(der, (bytes, bytearray)):
            continue
        try:
            out.append(certificate_sha1(x509.load_der_x509_certificate(bytes(der))))
        except ValueError:
            continue
    return out


def provisioning_profile_from_bytes(
    data: bytes,
    *,
    distribution_cert: DistributionCertificate,
    team_id: str | None = None,
    remote_id: str | None = None,
) -> ProvisioningProfile:
    payload = parse_profile_plist(data)
    if distribution_cert.sha1_fingerprint not in profile_certificate_sha1s(payload):
        raise CredentialValidationError(
            f"provisioning profile was not signed with distribution certificate "
            f"{distribution_cert.id}"
        )
    uuid = payload.get("UUID")
    if not isinstance(uuid, str) or not uuid:
        raise CredentialValidationError("provisioning profile has no UUID")

    team_ids = payload.get("TeamIdentifier") or []
    profile_team_id = team_ids[0] if team_ids and isinstance(team_ids[0], str) else None
    if team_id and profile_team_id and team_id != profile_team_id:
        raise CredentialValidationError(
            f"provisioning profile belongs to team {profile_team_id}, expected {team_id}"
        )
    expiration = payload.get("ExpirationDate")
    expires_at = (
        expiration.replace(tzinfo=timezone.utc).isoformat() if expiration is not None else None
    )
    return ProvisioningProfile(
        id=uuid,
        profile_b64=base64.b64encode(data).decode("ascii"),
        certificate_id=distribution_cert.id,
        team_id=team_id or profile_team_id,
        name=payload.get("Name"),
        devices=[str(device) for device in payload.get("ProvisionedDevices") or []],
        expires_at=expires_at,
        remote_id=remote_id,
    )


def provisioning_profile_from_params(
    *,
    profile_path: str | None,
    distribution_cert: DistributionCertificate,
    team_id: str | None,
) -> ProvisioningProfile | None:
    if not profile_path:
        return None
    data = _read_file(profile_path, "provisioning profile")
    return provisioning_profile_from_bytes(data, distribution_cert=distribution_cert, team_id=team_id)


@dataclass(frozen=True)
class CredentialParams:
    """Literal artifact overrides that bypass interactive acquisition."""

    team_id: str | None = None
    dist_p12_path: str | None = None
    dist_p12_password: str | None = None
    push_p8_path: str | None = None
    push_id: str | None = None
    provisioning_profile_path: str | None = None
