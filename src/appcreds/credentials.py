"""Credential artifact models for one (experience, bundle identifier) pair."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class CredentialType(str, Enum):
    DIST_CERT = "distributionCert"
    PUSH_KEY = "pushKey"
    PUSH_CERT = "pushCert"
    PROVISIONING_PROFILE = "provisioningProfile"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    CredentialType.DIST_CERT: "Distribution Certificate",
    CredentialType.PUSH_KEY: "Push Key",
    CredentialType.PUSH_CERT: "Push Certificate",
    CredentialType.PROVISIONING_PROFILE: "Provisioning Profile",
}


class _Artifact(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: ClassVar[CredentialType]
    secret_fields: ClassVar[frozenset[str]] = frozenset()

    id: str = Field(..., min_length=1)

    def public_view(self) -> dict:
        return self.model_dump(mode="json", exclude=set(self.secret_fields))


class DistributionCertificate(_Artifact):
    kind: ClassVar[CredentialType] = CredentialType.DIST_CERT
    secret_fields: ClassVar[frozenset[str]] = frozenset({"certificate_pem", "private_key_pem"})

    certificate_pem: str
    private_key_pem: str
    sha1_fingerprint: str
    team_id: Optional[str] = None
    expires_at: Optional[str] = None
    remote_id: Optional[str] = None


class PushKey(_Artifact):
    kind: ClassVar[CredentialType] = CredentialType.PUSH_KEY
    secret_fields: ClassVar[frozenset[str]] = frozenset({"key_p8"})

    key_p8: str
    team_id: Optional[str] = None
    remote_id: Optional[str] = None


class PushCertificate(_Artifact):
    """Legacy push certificate kept only so older projects keep building."""

    kind: ClassVar[CredentialType] = CredentialType.PUSH_CERT
    secret_fields: ClassVar[frozenset[str]] = frozenset({"certificate_p12_b64", "password"})

    certificate_p12_b64: str
    password: Optional[str] = None


class ProvisioningProfile(_Artifact):
    kind: ClassVar[CredentialType] = CredentialType.PROVISIONING_PROFILE
    secret_fields: ClassVar[frozenset[str]] = frozenset({"profile_b64"})

    profile_b64: str
    certificate_id: str
    team_id: Optional[str] = None
    name: Optional[str] = None
    devices: List[str] = Field(default_factory=list)
    expires_at: Optional[str] = None
    remote_id: Optional[str] = None


Artifact = Union[DistributionCertificate, PushKey, PushCertificate, ProvisioningProfile]


class AppCredentialBundle(BaseModel):
    model_config = ConfigDict(extra="forbid")

    experience_name: str
    bundle_identifier: str
    distribution_cert: Optional[DistributionCertificate] = None
    push_key: Optional[PushKey] = None
    push_cert: Optional[PushCertificate] = None
    provisioning_profile: Optional[ProvisioningProfile] = None

    def slot(self, kind: CredentialType) -> Optional[Artifact]:
        return getattr(self, _SLOT_ATTRS[kind])

    @property
    def profile_is_valid(self) -> bool:
        """A profile is only usable while the certificate it was signed against is present."""
        profile = self.provisioning_profile
        cert = self.distribution_cert
        return profile is not None and cert is not None and profile.certificate_id == cert.id


_SLOT_ATTRS = {
    CredentialType.DIST_CERT: "distribution_cert",
    CredentialType.PUSH_KEY: "push_key",
    CredentialType.PUSH_CERT: "push_cert",
    CredentialType.PROVISIONING_PROFILE: "provisioning_profile",
}


def slot_attr(kind: CredentialType) -> str:
    return _SLOT_ATTRS[kind]


ClearRequest = frozenset[CredentialType]


def build_clear_request(
    *,
    clear_credentials: bool = False,
    clear_dist_cert: bool = False,
    clear_push_key: bool = False,
    clear_push_cert: bool = False,
    clear_provisioning_profile: bool = False,
) -> ClearRequest:
    """Return only the credential types that were requested for clearing."""
    flags = {
        CredentialType.DIST_CERT: clear_credentials or clear_dist_cert,
        CredentialType.PUSH_KEY: clear_credentials or clear_push_key,
        CredentialType.PUSH_CERT: clear_credentials or clear_push_cert,
        CredentialType.PROVISIONING_PROFILE: clear_credentials or clear_provisioning_profile,
    }
    return frozenset(kind for kind, requested in flags.items() if requested)
