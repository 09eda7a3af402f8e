"""Per credential type acquisition and removal policy."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from appcreds.authority import RemoteAuthorityClient, Session
from appcreds.credentials import (
    Artifact,
    CredentialType,
    DistributionCertificate,
    ProvisioningProfile,
    PushKey,
)
from appcreds.csr import generate_signing_request
from appcreds.errors import (
    AuthError,
    CredentialValidationError,
    InsufficientCredentialsError,
    NonInteractiveError,
    RemoteAuthorityError,
)
from appcreds.logger import get_logger
from appcreds.params import (
    CredentialParams,
    dist_cert_from_params,
    distribution_certificate_from_pem,
    provisioning_profile_from_bytes,
    provisioning_profile_from_params,
    push_key_from_params,
)
from appcreds.prompts import Prompter
from appcreds.store import CredentialStore

UPLOAD_ATTEMPTS = 3

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ResolveContext:
    experience_name: str
    bundle_identifier: str
    session: Optional[Session]
    non_interactive: bool
    params: CredentialParams
    distribution_cert: Optional[DistributionCertificate] = None


@dataclass(frozen=True)
class _Strategy:
    from_params: Callable[[ResolveContext], Optional[Artifact]]
    acquire: Callable[[ResolveContext], Optional[Artifact]]
    revoke: Callable[[Session, str], None]


def _required(record: dict, field: str) -> str:
    value = record.get(field) if isinstance(record, dict) else None
    if value is None or value == "":
        raise RemoteAuthorityError(f"authority response missing {field}")
    return str(value)


def _listed(records: list[dict], remote_id: str) -> bool:
    return any(str(record.get("id")) == remote_id for record in records)


class CredentialResolver:
    """Produces or locates exactly one artifact of a requested type.

    Acquisition order is parameters first, then stored artifacts that are
    still compatible, then remote creation or operator upload.
    """

    def __init__(
        self,
        *,
        store: CredentialStore,
        authority: RemoteAuthorityClient,
        prompter: Prompter,
    ) -> None:
        self.store = store
        self.authority = authority
        self.prompter = prompter
        self._strategies: dict[CredentialType, _Strategy] = {
            CredentialType.DIST_CERT: _Strategy(
                from_params=self._dist_cert_from_params,
                acquire=self._acquire_dist_cert,
                revoke=authority.revoke_distribution_certificate,
            ),
            CredentialType.PUSH_KEY: _Strategy(
                from_params=self._push_key_from_params,
                acquire=self._acquire_push_key,
                revoke=authority.revoke_push_key,
            ),
            CredentialType.PROVISIONING_PROFILE: _Strategy(
                from_params=self._profile_from_params,
                acquire=self._acquire_profile,
                revoke=authority.revoke_provisioning_profile,
            ),
        }

    def resolve(self, kind: CredentialType, ctx: ResolveContext) -> Optional[Artifact]:
        if kind not in self._strategies:
            raise ValueError(f"{kind.display_name} is only reused while resolving a Push Key")
        if kind is CredentialType.PROVISIONING_PROFILE and ctx.distribution_cert is None:
            raise InsufficientCredentialsError(
                "a provisioning profile requires a valid distribution certificate"
            )
        strategy = self._strategies[kind]
        try:
            artifact = strategy.from_params(ctx)
            if artifact is not None:
                logger.info("using %s %s from parameters", kind.display_name, artifact.id)
            else:
                artifact = strategy.acquire(ctx)
            if artifact is not None:
                self.store.put(ctx.experience_name, ctx.bundle_identifier, artifact)
            return artifact
        except Exception:
            logger.error("Failed to set up %s", kind.display_name)
            raise

    def remove(
        self,
        kind: CredentialType,
        experience_name: str,
        bundle_identifier: str,
        *,
        session: Optional[Session],
        revoke: bool,
    ) -> bool:
        artifact = self.store.get(experience_name, bundle_identifier, kind)
        if artifact is None:
            return False

        self.store.delete(experience_name, bundle_identifier, kind)
        logger.info("removed %s %s from the local store", kind.display_name, artifact.id)
        if not revoke:
            return True

        strategy = self._strategies.get(kind)
        remote_id = getattr(artifact, "remote_id", None)
        if strategy is None:
            logger.info("%s has no remote revocation; removed locally only", kind.display_name)
            return True
        if remote_id is None:
            logger.info(
                "%s %s has no remote record; skipping revocation",
                kind.display_name,
                artifact.id,
            )
            return True
        if session is None:
            raise AuthError(f"revoking a {kind.display_name} requires an authenticated session")
        try:
            strategy.revoke(session, remote_id)
        except RemoteAuthorityError:
            logger.error("Failed to revoke %s %s", kind.display_name, artifact.id)
            raise
        logger.info("revoked %s %s on the remote authority", kind.display_name, artifact.id)
        return True

    def _stored(self, ctx: ResolveContext, kind: CredentialType) -> Optional[Artifact]:
        return self.store.get(ctx.experience_name, ctx.bundle_identifier, kind)

    def _still_listed(
        self,
        ctx: ResolveContext,
        remote_id: Optional[str],
        list_records: Callable[[Session], list[dict]],
    ) -> bool:
        if ctx.session is None or remote_id is None:
            return True
        return _listed(list_records(ctx.session), remote_id)

    def _require_interactive(self, ctx: ResolveContext, kind: CredentialType) -> None:
        if ctx.non_interactive:
            raise NonInteractiveError(
                f"no usable {kind.display_name} for {ctx.bundle_identifier}; supply one as a "
                f"parameter or run without --non-interactive"
            )

    def _upload(self, description: str, collect: Callable[[], T]) -> Optional[T]:
        if not self.prompter.confirm(f"Would you like to upload an existing {description}?"):
            logger.warning("no %s uploaded", description)
            return None
        attempts_left = UPLOAD_ATTEMPTS
        while True:
            try:
                return collect()
            except CredentialValidationError as exc:
                attempts_left -= 1
                if attempts_left <= 0:
                    raise
                logger.warning("%s", exc)

    def _team_id(self, ctx: ResolveContext) -> str:
        return ctx.params.team_id or self.prompter.text("Team ID")

    # Distribution certificate

    def _dist_cert_from_params(self, ctx: ResolveContext) -> Optional[Artifact]:
        return dist_cert_from_params(
            p12_path=ctx.params.dist_p12_path,
            password=ctx.params.dist_p12_password,
            team_id=ctx.params.team_id,
        )

    def _acquire_dist_cert(self, ctx: ResolveContext) -> Optional[Artifact]:
        existing = self._stored(ctx, CredentialType.DIST_CERT)
        if existing is not None:
            if self._still_listed(
                ctx, existing.remote_id, self.authority.list_distribution_certificates
            ):
                return existing
            logger.warning(
                "stored Distribution Certificate %s is no longer valid remotely", existing.id
            )

        self._require_interactive(ctx, CredentialType.DIST_CERT)
        if ctx.session is not None:
            return self._create_dist_cert(ctx.session, ctx.experience_name)
        return self._upload(
            "Distribution Certificate",
            lambda: dist_cert_from_params(
                p12_path=self.prompter.text("Path to P12 file"),
                password=self.prompter.secret("P12 password"),
                team_id=self._team_id(ctx),
            ),
        )

    def _create_dist_cert(self, session: Session, experience_name: str) -> DistributionCertificate:
        logger.info("generating a new Distribution Certificate")
        request = generate_signing_request(f"{experience_name} distribution")
        record = self.authority.create_distribution_certificate(session, request.csr_pem)
        return distribution_certificate_from_pem(
            _required(record, "certificate_pem"),
            request.private_key_pem,
            team_id=session.team_id,
            remote_id=_required(record, "id"),
        )

    # Push key

    def _push_key_from_params(self, ctx: ResolveContext) -> Optional[Artifact]:
        return push_key_from_params(
            p8_path=ctx.params.push_p8_path,
            key_id=ctx.params.push_id,
            team_id=ctx.params.team_id,
        )

    def _acquire_push_key(self, ctx: ResolveContext) -> Optional[Artifact]:
        existing = self._stored(ctx, CredentialType.PUSH_KEY)
        if existing is not None:
            if self._still_listed(ctx, existing.remote_id, self.authority.list_push_keys):
                return existing
            logger.warning("stored Push Key %s is no longer valid remotely", existing.id)

        # TODO: drop once every project has migrated from push certificates to push keys
        legacy = self._stored(ctx, CredentialType.PUSH_CERT)
        if legacy is not None:
            logger.warning(
                "using legacy Push Certificate %s; clear it to switch to a Push Key", legacy.id
            )
            return legacy

        self._require_interactive(ctx, CredentialType.PUSH_KEY)
        if ctx.session is not None:
            logger.info("generating a new Push Key")
            record = self.authority.create_push_key(ctx.session, f"{ctx.experience_name} push key")
            return PushKey(
                id=_required(record, "key_id"),
                key_p8=_required(record, "key_p8"),
                team_id=ctx.session.team_id,
                remote_id=_required(record, "id"),
            )
        return self._upload(
            "Push Key",
            lambda: push_key_from_params(
                p8_path=self.prompter.text("Path to P8 file"),
                key_id=self.prompter.text("Key ID"),
                team_id=self._team_id(ctx),
            ),
        )

    # Provisioning profile

    def _profile_from_params(self, ctx: ResolveContext) -> Optional[Artifact]:
        return provisioning_profile_from_params(
            profile_path=ctx.params.provisioning_profile_path,
            distribution_cert=ctx.distribution_cert,
            team_id=ctx.params.team_id,
        )

    def _acquire_profile(self, ctx: ResolveContext) -> Optional[Artifact]:
        dist_cert = ctx.distribution_cert
        existing = self._stored(ctx, CredentialType.PROVISIONING_PROFILE)
        if existing is not None:
            if existing.certificate_id != dist_cert.id:
                logger.info(
                    "stored Provisioning Profile %s was signed with certificate %s, not %s",
                    existing.id,
                    existing.certificate_id,
                    dist_cert.id,
                )
            elif self._still_listed(
                ctx,
                existing.remote_id,
                lambda session: self.authority.list_provisioning_profiles(
                    session, ctx.bundle_identifier
                ),
            ):
                return existing
            else:
                logger.warning(
                    "stored Provisioning Profile %s is no longer valid remotely", existing.id
                )

        self._require_interactive(ctx, CredentialType.PROVISIONING_PROFILE)
        if ctx.session is not None and self.prompter.confirm(
            f"Create a new Provisioning Profile for {ctx.bundle_identifier}?"
        ):
            return self._create_profile(ctx.session, ctx.bundle_identifier, dist_cert)
        return self._upload(
            "Provisioning Profile",
            lambda: provisioning_profile_from_params(
                profile_path=self.prompter.text("Path to .mobileprovision file"),
                distribution_cert=dist_cert,
                team_id=ctx.params.team_id,
            ),
        )

    def _create_profile(
        self,
        session: Session,
        bundle_identifier: str,
        dist_cert: DistributionCertificate,
    ) -> ProvisioningProfile:
        logger.info("generating a new Provisioning Profile for %s", bundle_identifier)
        record = self.authority.create_provisioning_profile(
            session, bundle_identifier, dist_cert.id
        )
        try:
            data = base64.b64decode(_required(record, "profile_b64"), validate=True)
        except ValueError as exc:
            raise RemoteAuthorityError("authority returned an undecodable profile") from exc
        return provisioning_profile_from_bytes(
            data,
            distribution_cert=dist_cert,
            team_id=session.team_id,
            remote_id=_required(record, "id"),
        )
