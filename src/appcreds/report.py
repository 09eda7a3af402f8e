"""Operator-facing rendering of an app's credentials."""

from __future__ import annotations

import json
import sys

from appcreds.credentials import AppCredentialBundle, CredentialType, slot_attr


def credentials_payload(bundle: AppCredentialBundle) -> dict:
    payload: dict = {
        "experience_name": bundle.experience_name,
        "bundle_identifier": bundle.bundle_identifier,
    }
    for kind in CredentialType:
        artifact = bundle.slot(kind)
        payload[slot_attr(kind)] = artifact.public_view() if artifact is not None else None
    payload["provisioning_profile_valid"] = bundle.profile_is_valid
    return payload


def _describe(bundle: AppCredentialBundle, kind: CredentialType) -> str:
    artifact = bundle.slot(kind)
    if artifact is None:
        return "none"
    details = [f"id={artifact.id}"]
    for field in ("team_id", "certificate_id", "expires_at", "remote_id"):
        value = getattr(artifact, field, None)
        if value:
            details.append(f"{field}={value}")
    if kind is CredentialType.PUSH_CERT:
        details.append("legacy")
    if kind is CredentialType.PROVISIONING_PROFILE and not bundle.profile_is_valid:
        details.append("stale")
    return " ".join(details)


def display_credentials(
    bundle: AppCredentialBundle,
    *,
    stdout=None,
    as_json: bool = False,
) -> None:
    out = stdout if stdout is not None else sys.stdout
    if as_json:
        print(json.dumps(credentials_payload(bundle), sort_keys=True), file=out)
        return

    print(f"experience_name: {bundle.experience_name}", file=out)
    print(f"bundle_identifier: {bundle.bundle_identifier}", file=out)
    for kind in CredentialType:
        print(f"{slot_attr(kind)}: {_describe(bundle, kind)}", file=out)
