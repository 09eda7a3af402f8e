"""Local credential store keyed by (experience name, bundle identifier)."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from appcreds.credentials import (
    AppCredentialBundle,
    Artifact,
    CredentialType,
    slot_attr,
)
from appcreds.errors import StoreError

STORE_SCHEMA_VERSION = 1
DEFAULT_STORE_PATH = Path.home() / ".appcreds" / "credentials.json"


def _store_key(experience_name: str, bundle_identifier: str) -> str:
    return f"{experience_name}:{bundle_identifier}"


class CredentialStore:
    """Read/write access to persisted credential records.

    Subclasses provide whole-bundle load and save; artifact level access is
    built on top so every backend is read-your-writes consistent.
    """

    def _load_bundle(self, key: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    def _save_bundle(self, key: str, payload: Optional[dict[str, Any]]) -> None:
        raise NotImplementedError

    def get_bundle(self, experience_name: str, bundle_identifier: str) -> AppCredentialBundle:
        payload = self._load_bundle(_store_key(experience_name, bundle_identifier))
        if payload is None:
            return AppCredentialBundle(
                experience_name=experience_name,
                bundle_identifier=bundle_identifier,
            )
        try:
            return AppCredentialBundle.model_validate(payload)
        except ValidationError as exc:
            raise StoreError(
                f"corrupt credential record for {experience_name} ({bundle_identifier})"
            ) from exc

    def get(
        self,
        experience_name: str,
        bundle_identifier: str,
        kind: CredentialType,
    ) -> Optional[Artifact]:
        return self.get_bundle(experience_name, bundle_identifier).slot(kind)

    def put(self, experience_name: str, bundle_identifier: str, artifact: Artifact) -> None:
        bundle = self.get_bundle(experience_name, bundle_identifier)
        updated = bundle.model_copy(update={slot_attr(artifact.kind): artifact})
        self._save_bundle(
            _store_key(experience_name, bundle_identifier),
            updated.model_dump(mode="json"),
        )

    def delete(self, experience_name: str, bundle_identifier: str, kind: CredentialType) -> None:
        bundle = self.get_bundle(experience_name, bundle_identifier)
        if bundle.slot(kind) is None:
            return
        updated = bundle.model_copy(update={slot_attr(kind): None})
        if all(updated.slot(other) is None for other in CredentialType):
            self._save_bundle(_store_key(experience_name, bundle_identifier), None)
            return
        self._save_bundle(
            _store_key(experience_name, bundle_identifier),
            updated.model_dump(mode="json"),
        )


class InMemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    def _load_bundle(self, key: str) -> Optional[dict[str, Any]]:
        record = self._records.get(key)
        return json.loads(json.dumps(record)) if record is not None else None

    def _save_bundle(self, key: str, payload: Optional[dict[str, Any]]) -> None:
        if payload is None:
            self._records.pop(key, None)
        else:
            self._records[key] = payload


def _chmod_owner_only(path: Path) -> None:
    if os.name != "posix":
        return
    path.chmod(0o600)


class JsonFileCredentialStore(CredentialStore):
    """Single JSON document holding every app's credentials, readable by the owner only."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else DEFAULT_STORE_PATH

    def _read_document(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"schema_version": STORE_SCHEMA_VERSION, "apps": {}}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as exc:
            raise StoreError(f"invalid credential store file: {self.path}") from exc
        if not isinstance(document, dict) or not isinstance(document.get("apps"), dict):
            raise StoreError(f"credential store file must contain an apps table: {self.path}")
        schema_version = document.get("schema_version")
        if schema_version != STORE_SCHEMA_VERSION:
            raise StoreError(
                f"unsupported credential store schema_version={schema_version!r}: {self.path}"
            )
        return document

    def _load_bundle(self, key: str) -> Optional[dict[str, Any]]:
        record = self._read_document()["apps"].get(key)
        if record is not None and not isinstance(record, dict):
            raise StoreError(f"credential record for {key} must be a table")
        return record

    def _save_bundle(self, key: str, payload: Optional[dict[str, Any]]) -> None:
        document = self._read_document()
        if payload is None:
            document["apps"].pop(key, None)
        else:
            document["apps"][key] = payload

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_text(
                json.dumps(document, sort_keys=True, indent=2) + "\n",
                encoding="utf-8",
            )
            _chmod_owner_only(tmp_path)
            tmp_path.replace(self.path)
        except OSError as exc:
            raise StoreError(f"failed to write credential store file: {self.path}") from exc
