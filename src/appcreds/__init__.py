"""appcreds public surface."""

from appcreds.authority import AuthorityParams, RemoteAuthorityClient, Session
from appcreds.credentials import (
    AppCredentialBundle,
    ClearRequest,
    CredentialType,
    DistributionCertificate,
    ProvisioningProfile,
    PushCertificate,
    PushKey,
    build_clear_request,
)
from appcreds.errors import (
    AppCredsError,
    AuthError,
    CredentialValidationError,
    InsufficientCredentialsError,
    NonInteractiveError,
    RemoteAuthorityError,
    RemoteAuthorityRequestError,
    StoreError,
)
from appcreds.orchestrator import CredentialOrchestrator, PrepareOptions
from appcreds.params import CredentialParams
from appcreds.prompts import ConsolePrompter, NonInteractivePrompter, Prompter
from appcreds.resolver import CredentialResolver, ResolveContext
from appcreds.store import CredentialStore, InMemoryCredentialStore, JsonFileCredentialStore

__all__ = [
    "AppCredsError",
    "RemoteAuthorityError",
    "RemoteAuthorityRequestError",
    "AuthError",
    "InsufficientCredentialsError",
    "NonInteractiveError",
    "CredentialValidationError",
    "StoreError",
    "CredentialType",
    "ClearRequest",
    "build_clear_request",
    "AppCredentialBundle",
    "DistributionCertificate",
    "PushKey",
    "PushCertificate",
    "ProvisioningProfile",
    "CredentialStore",
    "InMemoryCredentialStore",
    "JsonFileCredentialStore",
    "RemoteAuthorityClient",
    "AuthorityParams",
    "Session",
    "Prompter",
    "ConsolePrompter",
    "NonInteractivePrompter",
    "CredentialParams",
    "CredentialResolver",
    "ResolveContext",
    "CredentialOrchestrator",
    "PrepareOptions",
]
