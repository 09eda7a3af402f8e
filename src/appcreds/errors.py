"""Credential orchestration error types."""

from __future__ import annotations


class AppCredsError(RuntimeError):
    """Base error."""


class RemoteAuthorityError(AppCredsError):
    """Remote signing authority could not be reached."""


class RemoteAuthorityRequestError(RemoteAuthorityError):
    """Remote authority returned a structured HTTP error response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: object | None = None,
        error_code: str | None = None,
        body: object | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.error_code = error_code
        self.body = body


class AuthError(RemoteAuthorityRequestError):
    """Remote authority rejected the supplied account credentials."""


class InsufficientCredentialsError(AppCredsError):
    """A build cannot proceed without a distribution certificate."""


class NonInteractiveError(AppCredsError):
    """Operator input was required but interactive prompts are disabled."""


class CredentialValidationError(AppCredsError):
    """Supplied credential material is malformed or inconsistent."""


class StoreError(AppCredsError):
    """Local credential store could not be read or written."""
