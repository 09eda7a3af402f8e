"""Command-line interface for appcreds."""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Sequence

from appcreds.authority import AuthorityParams, RemoteAuthorityClient
from appcreds.cli.config import CLIConfig, ConfigError, load_cli_config
from appcreds.errors import (
    CredentialValidationError,
    InsufficientCredentialsError,
    NonInteractiveError,
    RemoteAuthorityError,
    StoreError,
)
from appcreds.logger import set_level
from appcreds.orchestrator import AUTHORITY_PASSWORD_ENV_VAR, CredentialOrchestrator, PrepareOptions
from appcreds.params import CredentialParams
from appcreds.prompts import ConsolePrompter
from appcreds.report import display_credentials
from appcreds.store import JsonFileCredentialStore

EXIT_SUCCESS = 0
EXIT_VALIDATION_ERROR = 1
EXIT_AUTHORITY_ERROR = 2
EXIT_INSUFFICIENT_CREDENTIALS = 3
EXIT_NON_INTERACTIVE = 4

DIST_P12_PASSWORD_ENV_VAR = "APPCREDS_DIST_P12_PASSWORD"
NON_INTERACTIVE_HELP_URL = "https://appcreds.dev/docs/non-interactive"

_SENSITIVE_FIELDS = (
    "password",
    "private_key_pem",
    "key_p8",
    "session_token",
    "token",
    "authorization",
    "secret",
)


def _sdk_version() -> str:
    try:
        return pkg_version("appcreds")
    except PackageNotFoundError:
        return "0.0.0+local"


def _add_app_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--experience-name",
        required=True,
        help="Owner-scoped app name, e.g. @acme/app",
    )
    parser.add_argument("--bundle-identifier", required=True, help="e.g. com.acme.app")
    parser.add_argument("--json", action="store_true", help="Print credentials as JSON")
    parser.add_argument(
        "--verbose",
        dest="command_verbose",
        action="store_true",
        help="Enable debug logging",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="appcreds")
    parser.add_argument(
        "--version",
        action="version",
        version=f"appcreds {_sdk_version()}",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to CLI config TOML (default: ~/.appcreds/config.toml)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    version = sub.add_parser("version", help="Show CLI version")
    version.add_argument("--json", action="store_true", help="Print version details as JSON")

    show = sub.add_parser("show", help="Show stored credentials for an app")
    _add_app_arguments(show)

    prepare = sub.add_parser(
        "prepare",
        help="Ensure every credential needed for a signable build is available",
    )
    _add_app_arguments(prepare)
    prepare.add_argument(
        "--skip-credentials-check",
        action="store_true",
        help="Do not check or produce credentials (clearing still happens)",
    )
    prepare.add_argument(
        "--clear-credentials",
        action="store_true",
        help="Clear every stored credential before preparing",
    )
    prepare.add_argument("--clear-dist-cert", action="store_true")
    prepare.add_argument("--clear-push-key", action="store_true")
    prepare.add_argument(
        "--clear-push-cert",
        action="store_true",
        help="Clear the legacy push certificate",
    )
    prepare.add_argument("--clear-provisioning-profile", action="store_true")
    prepare.add_argument(
        "--revoke-credentials",
        action="store_true",
        help="Also revoke cleared credentials on the remote authority",
    )
    prepare.add_argument(
        "--non-interactive",
        action="store_true",
        help="Fail instead of prompting when operator input is required",
    )
    prepare.add_argument(
        "--apple-id",
        default=None,
        help=f"Account ID for the remote authority (password from {AUTHORITY_PASSWORD_ENV_VAR})",
    )
    prepare.add_argument("--team-id", default=None)
    prepare.add_argument(
        "--dist-p12-path",
        default=None,
        help=f"Distribution certificate PKCS#12 file (password from {DIST_P12_PASSWORD_ENV_VAR})",
    )
    prepare.add_argument("--push-p8-path", default=None, help="Push key .p8 file")
    prepare.add_argument("--push-id", default=None, help="Push key id")
    prepare.add_argument(
        "--provisioning-profile-path",
        default=None,
        help="Provisioning profile .mobileprovision file",
    )

    return parser


def _sanitize_error_text(value: str) -> str:
    redacted = value
    for field in _SENSITIVE_FIELDS:
        redacted = re.sub(
            rf"(?i)({field}\s*[=:]\s*)([^,\s]+)",
            r"\1[REDACTED]",
            redacted,
        )
    redacted = re.sub(r"(?i)(bearer\s+)(\S+)", r"\1[REDACTED]", redacted)
    return redacted


def _print_error(stderr, prefix: str, message: str, *, code: int) -> int:
    print(f"{prefix}: {_sanitize_error_text(message)}", file=stderr)
    return code


def _build_authority_client(config: CLIConfig) -> RemoteAuthorityClient:
    return RemoteAuthorityClient(
        base_url=config.authority_base,
        timeout=config.request_timeout,
        retries=config.retries,
    )


def _authority_params(args, prompter: ConsolePrompter) -> AuthorityParams | None:
    if not args.apple_id:
        return None
    password = os.getenv(AUTHORITY_PASSWORD_ENV_VAR)
    if not password:
        if args.non_interactive:
            raise CredentialValidationError(
                f"{AUTHORITY_PASSWORD_ENV_VAR} must be set together with --apple-id"
            )
        password = prompter.secret("Password")
    return AuthorityParams(apple_id=args.apple_id, password=password, team_id=args.team_id)


def _prepare_options(args, prompter: ConsolePrompter) -> PrepareOptions:
    return PrepareOptions(
        skip_credentials_check=args.skip_credentials_check,
        clear_credentials=args.clear_credentials,
        clear_dist_cert=args.clear_dist_cert,
        clear_push_key=args.clear_push_key,
        clear_push_cert=args.clear_push_cert,
        clear_provisioning_profile=args.clear_provisioning_profile,
        revoke_credentials=args.revoke_credentials,
        non_interactive=args.non_interactive,
        authority_params=_authority_params(args, prompter),
        params=CredentialParams(
            team_id=args.team_id,
            dist_p12_path=args.dist_p12_path,
            dist_p12_password=os.getenv(DIST_P12_PASSWORD_ENV_VAR),
            push_p8_path=args.push_p8_path,
            push_id=args.push_id,
            provisioning_profile_path=args.provisioning_profile_path,
        ),
    )


def _run_version(*, as_json: bool, stdout) -> int:
    payload = {"cli": "appcreds", "version": _sdk_version()}
    if as_json:
        print(json.dumps(payload, sort_keys=True), file=stdout)
    else:
        print(f"appcreds {payload['version']}", file=stdout)
    return EXIT_SUCCESS


def _run_show(*, args, config: CLIConfig, stdout, stderr) -> int:
    store = JsonFileCredentialStore(config.store_path)
    try:
        bundle = store.get_bundle(args.experience_name, args.bundle_identifier)
    except StoreError as exc:
        return _print_error(stderr, "store error", str(exc), code=EXIT_VALIDATION_ERROR)
    display_credentials(bundle, stdout=stdout, as_json=args.json)
    return EXIT_SUCCESS


def _run_prepare(*, args, config: CLIConfig, stdout, stderr) -> int:
    prompter = ConsolePrompter()
    try:
        options = _prepare_options(args, prompter)
    except CredentialValidationError as exc:
        return _print_error(stderr, "validation error", str(exc), code=EXIT_VALIDATION_ERROR)

    orchestrator = CredentialOrchestrator(
        store=JsonFileCredentialStore(config.store_path),
        authority=_build_authority_client(config),
        prompter=prompter,
        reporter=lambda bundle: display_credentials(bundle, stdout=stdout, as_json=args.json),
    )
    try:
        orchestrator.prepare(
            experience_name=args.experience_name,
            bundle_identifier=args.bundle_identifier,
            options=options,
        )
    except NonInteractiveError as exc:
        print(
            "Additional information needed to set up credentials in non-interactive mode.",
            file=stderr,
        )
        print(f"Learn more about how to resolve this: {NON_INTERACTIVE_HELP_URL}", file=stderr)
        return _print_error(stderr, "non-interactive", str(exc), code=EXIT_NON_INTERACTIVE)
    except InsufficientCredentialsError as exc:
        return _print_error(
            stderr, "insufficient credentials", str(exc), code=EXIT_INSUFFICIENT_CREDENTIALS
        )
    except RemoteAuthorityError as exc:
        return _print_error(stderr, "authority error", str(exc), code=EXIT_AUTHORITY_ERROR)
    except CredentialValidationError as exc:
        return _print_error(stderr, "validation error", str(exc), code=EXIT_VALIDATION_ERROR)
    except StoreError as exc:
        return _print_error(stderr, "store error", str(exc), code=EXIT_VALIDATION_ERROR)
    return EXIT_SUCCESS


def main(argv: Sequence[str] | None = None, *, stdout=sys.stdout, stderr=sys.stderr) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_cli_config(args.config)
    except ConfigError as exc:
        return _print_error(stderr, "config error", str(exc), code=EXIT_VALIDATION_ERROR)

    verbose = args.verbose or getattr(args, "command_verbose", False)
    set_level(logging.DEBUG if verbose else config.log_level.upper())

    if args.command == "version":
        return _run_version(as_json=args.json, stdout=stdout)

    if args.command == "show":
        return _run_show(args=args, config=config, stdout=stdout, stderr=stderr)

    if args.command == "prepare":
        return _run_prepare(args=args, config=config, stdout=stdout, stderr=stderr)

    print("unknown command", file=stderr)
    return EXIT_VALIDATION_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
