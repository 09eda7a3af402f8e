from __future__ import annotations

import json
import os

import pytest
from factories import BUNDLE_ID, EXPERIENCE, make_dist_cert_artifact

from appcreds.credentials import CredentialType, ProvisioningProfile, PushCertificate
from appcreds.errors import StoreError
from appcreds.store import InMemoryCredentialStore, JsonFileCredentialStore


def _profile(certificate_id: str) -> ProvisioningProfile:
    return ProvisioningProfile(id="uuid-1", profile_b64="cHJvZmlsZQ==", certificate_id=certificate_id)


@pytest.fixture(params=["json", "memory"])
def store(request, tmp_path):
    if request.param == "json":
        return JsonFileCredentialStore(tmp_path / "credentials.json")
    return InMemoryCredentialStore()


def test_put_is_visible_to_next_get(store) -> None:
    cert, _ = make_dist_cert_artifact()
    assert store.get(EXPERIENCE, BUNDLE_ID, CredentialType.DIST_CERT) is None

    store.put(EXPERIENCE, BUNDLE_ID, cert)

    assert store.get(EXPERIENCE, BUNDLE_ID, CredentialType.DIST_CERT) == cert
    bundle = store.get_bundle(EXPERIENCE, BUNDLE_ID)
    assert bundle.distribution_cert == cert
    assert bundle.push_key is None


def test_records_are_scoped_per_bundle_identifier(store) -> None:
    cert, _ = make_dist_cert_artifact()
    store.put(EXPERIENCE, BUNDLE_ID, cert)
    assert store.get(EXPERIENCE, "com.acme.other", CredentialType.DIST_CERT) is None


def test_deleting_certificate_leaves_profile_in_place(store) -> None:
    cert, _ = make_dist_cert_artifact()
    store.put(EXPERIENCE, BUNDLE_ID, cert)
    store.put(EXPERIENCE, BUNDLE_ID, _profile(cert.id))

    store.delete(EXPERIENCE, BUNDLE_ID, CredentialType.DIST_CERT)

    bundle = store.get_bundle(EXPERIENCE, BUNDLE_ID)
    assert bundle.distribution_cert is None
    assert bundle.provisioning_profile is not None
    assert not bundle.profile_is_valid


def test_delete_of_absent_artifact_is_a_no_op(store) -> None:
    store.delete(EXPERIENCE, BUNDLE_ID, CredentialType.PUSH_KEY)
    store.put(EXPERIENCE, BUNDLE_ID, PushCertificate(id="legacy", certificate_p12_b64="AA=="))
    store.delete(EXPERIENCE, BUNDLE_ID, CredentialType.PUSH_KEY)
    assert store.get(EXPERIENCE, BUNDLE_ID, CredentialType.PUSH_CERT) is not None


def test_json_store_drops_empty_records_and_is_owner_only(tmp_path) -> None:
    path = tmp_path / "nested" / "credentials.json"
    store = JsonFileCredentialStore(path)
    store.put(EXPERIENCE, BUNDLE_ID, PushCertificate(id="legacy", certificate_p12_b64="AA=="))

    if os.name == "posix":
        assert path.stat().st_mode & 0o777 == 0o600
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["schema_version"] == 1
    assert f"{EXPERIENCE}:{BUNDLE_ID}" in document["apps"]

    store.delete(EXPERIENCE, BUNDLE_ID, CredentialType.PUSH_CERT)
    document = json.loads(path.read_text(encoding="utf-8"))
    assert document["apps"] == {}


def test_json_store_rejects_invalid_file(tmp_path) -> None:
    path = tmp_path / "credentials.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        JsonFileCredentialStore(path).get_bundle(EXPERIENCE, BUNDLE_ID)


def test_json_store_rejects_unknown_schema_version(tmp_path) -> None:
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({"schema_version": 99, "apps": {}}), encoding="utf-8")
    with pytest.raises(StoreError, match="schema_version"):
        JsonFileCredentialStore(path).get_bundle(EXPERIENCE, BUNDLE_ID)


def test_json_store_rejects_corrupt_record(tmp_path) -> None:
    path = tmp_path / "credentials.json"
    path.write_text(
        json.dumps(
            {
                "schema_version": 1,
                "apps": {f"{EXPERIENCE}:{BUNDLE_ID}": {"experience_name": EXPERIENCE}},
            }
        ),
        encoding="utf-8",
    )
    with pytest.raises(StoreError, match="corrupt"):
        JsonFileCredentialStore(path).get_bundle(EXPERIENCE, BUNDLE_ID)
