"""Key pair and signing request generation for new distribution certificates."""

from __future__ import annotations

from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
)
from cryptography.x509.oid import NameOID

RSA_KEY_SIZE = 2048


@dataclass(frozen=True)
class SigningRequest:
    csr_pem: str
    private_key_pem: str


def generate_signing_request(common_name: str) -> SigningRequest:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
        .sign(private_key, hashes.SHA256())
    )
    return SigningRequest(
        csr_pem=csr.public_bytes(Encoding.PEM).decode("ascii"),
        private_key_pem=private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ).decode("ascii"),
    )
