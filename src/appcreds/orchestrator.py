"""Credential preparation for one build attempt.

``CredentialOrchestrator.prepare`` is the single entry point: it clears and
optionally revokes requested artifacts, opens a remote authority session when
possible, resolves every credential type in dependency order and reports the
resulting credentials to the operator.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Callable, Iterator, Optional

from appcreds.authority import (
    PUSH_NOTIFICATIONS,
    AuthorityParams,
    RemoteAuthorityClient,
    Session,
)
from appcreds.credentials import (
    AppCredentialBundle,
    ClearRequest,
    CredentialType,
    build_clear_request,
)
from appcreds.errors import (
    InsufficientCredentialsError,
    NonInteractiveError,
    RemoteAuthorityError,
)
from appcreds.logger import get_logger
from appcreds.params import CredentialParams
from appcreds.prompts import NonInteractivePrompter, Prompter
from appcreds.report import display_credentials
from appcreds.resolver import CredentialResolver, ResolveContext
from appcreds.store import CredentialStore

AUTHORITY_PASSWORD_ENV_VAR = "APPCREDS_AUTHORITY_PASSWORD"

CLEAR_ORDER: tuple[CredentialType, ...] = (
    CredentialType.DIST_CERT,
    CredentialType.PUSH_KEY,
    CredentialType.PROVISIONING_PROFILE,
    CredentialType.PUSH_CERT,
)

logger = get_logger(__name__)

Reporter = Callable[[AppCredentialBundle], None]


@dataclass(frozen=True)
class PrepareOptions:
    skip_credentials_check: bool = False
    clear_credentials: bool = False
    clear_dist_cert: bool = False
    clear_push_key: bool = False
    clear_push_cert: bool = False
    clear_provisioning_profile: bool = False
    revoke_credentials: bool = False
    non_interactive: bool = False
    authority_params: Optional[AuthorityParams] = None
    params: CredentialParams = field(default_factory=CredentialParams)

    @property
    def clear_request(self) -> ClearRequest:
        return build_clear_request(
            clear_credentials=self.clear_credentials,
            clear_dist_cert=self.clear_dist_cert,
            clear_push_key=self.clear_push_key,
            clear_push_cert=self.clear_push_cert,
            clear_provisioning_profile=self.clear_provisioning_profile,
        )


class CredentialOrchestrator:
    def __init__(
        self,
        *,
        store: CredentialStore,
        authority: RemoteAuthorityClient,
        prompter: Prompter,
        reporter: Reporter = display_credentials,
    ) -> None:
        self.store = store
        self.authority = authority
        self.prompter = prompter
        self.reporter = reporter

    def prepare(
        self,
        *,
        experience_name: str,
        bundle_identifier: str,
        options: PrepareOptions,
        session: Optional[Session] = None,
    ) -> Optional[AppCredentialBundle]:
        """Make sure every artifact a signable build needs is available.

        Returns the final credentials, or ``None`` when the check is skipped.
        Raises ``InsufficientCredentialsError``, ``NonInteractiveError`` or the
        underlying error of the credential type that failed.
        """
        prompter = NonInteractivePrompter() if options.non_interactive else self.prompter
        resolver = CredentialResolver(store=self.store, authority=self.authority, prompter=prompter)

        clear_request = options.clear_request
        if clear_request:
            session = self.clear_and_revoke(
                experience_name,
                bundle_identifier,
                clear_request,
                options=options,
                resolver=resolver,
                prompter=prompter,
                session=session,
            )

        if options.skip_credentials_check:
            logger.info("Skipping credentials check...")
            return None

        session = self.best_effort_session(options=options, prompter=prompter, session=session)

        with self._report_when_done(experience_name, bundle_identifier):
            self.produce(
                experience_name,
                bundle_identifier,
                options=options,
                resolver=resolver,
                session=session,
            )
        return self.store.get_bundle(experience_name, bundle_identifier)

    def produce(
        self,
        experience_name: str,
        bundle_identifier: str,
        *,
        options: PrepareOptions,
        resolver: CredentialResolver,
        session: Optional[Session],
    ) -> None:
        if session is not None:
            try:
                self.authority.ensure_app_registered(
                    session,
                    experience_name,
                    bundle_identifier,
                    capabilities=(PUSH_NOTIFICATIONS,),
                )
            except RemoteAuthorityError:
                logger.error("Failed to register %s with the remote authority", bundle_identifier)
                raise

        ctx = ResolveContext(
            experience_name=experience_name,
            bundle_identifier=bundle_identifier,
            session=session,
            non_interactive=options.non_interactive,
            params=options.params,
        )
        resolver.resolve(CredentialType.DIST_CERT, ctx)

        distribution_cert = self.store.get(
            experience_name, bundle_identifier, CredentialType.DIST_CERT
        )
        if distribution_cert is None:
            raise InsufficientCredentialsError(
                "This build request requires a valid distribution certificate."
            )

        resolver.resolve(CredentialType.PUSH_KEY, ctx)
        resolver.resolve(
            CredentialType.PROVISIONING_PROFILE,
            replace(ctx, distribution_cert=distribution_cert),
        )

    def clear_and_revoke(
        self,
        experience_name: str,
        bundle_identifier: str,
        clear_request: ClearRequest,
        *,
        options: PrepareOptions,
        resolver: CredentialResolver,
        prompter: Prompter,
        session: Optional[Session],
    ) -> Optional[Session]:
        revoke = options.revoke_credentials
        if revoke and self._has_revocable(experience_name, bundle_identifier, clear_request):
            session = self.required_session(options=options, prompter=prompter, session=session)

        for kind in CLEAR_ORDER:
            if kind not in clear_request:
                continue
            resolver.remove(
                kind,
                experience_name,
                bundle_identifier,
                session=session,
                revoke=revoke,
            )
        return session

    def best_effort_session(
        self,
        *,
        options: PrepareOptions,
        prompter: Prompter,
        session: Optional[Session],
    ) -> Optional[Session]:
        if session is not None:
            return session
        if options.authority_params is not None:
            return self.authority.authenticate(options.authority_params)
        if options.non_interactive:
            return None

        if not prompter.confirm(
            "Do you have access to the account that will be used for submitting this app?"
        ):
            logger.info(
                "Credentials cannot be generated without account access; "
                "existing credentials can still be uploaded."
            )
            return None
        return self.authority.authenticate(self._collect_authority_params(options, prompter))

    def required_session(
        self,
        *,
        options: PrepareOptions,
        prompter: Prompter,
        session: Optional[Session],
    ) -> Session:
        if session is not None:
            return session
        if options.authority_params is not None:
            return self.authority.authenticate(options.authority_params)
        return self.authority.authenticate(self._collect_authority_params(options, prompter))

    def _collect_authority_params(
        self,
        options: PrepareOptions,
        prompter: Prompter,
    ) -> AuthorityParams:
        apple_id = prompter.text("Account ID")
        password = os.getenv(AUTHORITY_PASSWORD_ENV_VAR) or prompter.secret("Password")
        return AuthorityParams(apple_id=apple_id, password=password, team_id=options.params.team_id)

    def _has_revocable(
        self,
        experience_name: str,
        bundle_identifier: str,
        clear_request: ClearRequest,
    ) -> bool:
        bundle = self.store.get_bundle(experience_name, bundle_identifier)
        for kind in clear_request:
            artifact = bundle.slot(kind)
            if artifact is not None and getattr(artifact, "remote_id", None) is not None:
                return True
        return False

    @contextmanager
    def _report_when_done(self, experience_name: str, bundle_identifier: str) -> Iterator[None]:
        """Report current credentials after production, except on non-interactive bail-out.

        Without operator input the partially resolved credentials cannot be
        completed, so showing them would suggest a usable configuration.
        """
        try:
            yield
        except NonInteractiveError:
            logger.error(
                "Additional information needed to set up credentials in non-interactive mode."
            )
            raise
        except Exception:
            logger.error(
                "Failed to prepare all credentials. "
                "The next build will use the following configuration:"
            )
            self._report(experience_name, bundle_identifier)
            raise
        self._report(experience_name, bundle_identifier)

    def _report(self, experience_name: str, bundle_identifier: str) -> None:
        self.reporter(self.store.get_bundle(experience_name, bundle_identifier))
