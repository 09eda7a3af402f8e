"""HTTP client for the remote signing authority."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

from appcreds.errors import AuthError, RemoteAuthorityError, RemoteAuthorityRequestError
from appcreds.logger import get_logger

DEFAULT_AUTHORITY_BASE = "https://authority.appcreds.dev"
PUSH_NOTIFICATIONS = "push_notifications"

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthorityParams:
    apple_id: str
    password: str
    team_id: str | None = None


@dataclass(frozen=True)
class Session:
    """An authenticated remote authority session.

    Passed explicitly to every call that may create or revoke remote records;
    ``None`` in its place means only local or supplied artifacts can be used.
    """

    token: str
    team_id: str
    team_name: str | None = None


@dataclass
class RemoteAuthorityClient:
    base_url: str = DEFAULT_AUTHORITY_BASE
    timeout: float = 30.0
    retries: int = 2

    def __post_init__(self) -> None:
        try:
            import requests
            from requests.adapters import HTTPAdapter
            from urllib3.util.retry import Retry
        except Exception as exc:  # pragma: no cover
            raise RemoteAuthorityError(f"requests stack unavailable: {exc}") from exc

        self._session = requests.Session()
        retry = Retry(
            total=max(0, int(self.retries)),
            connect=max(0, int(self.retries)),
            read=max(0, int(self.retries)),
            status=max(0, int(self.retries)),
            status_forcelist=(429, 500, 502, 503, 504),
            backoff_factor=0.5,
            allowed_methods=("GET", "DELETE"),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        session: Session | None = None,
        json_payload: dict | None = None,
        allow_missing: bool = False,
    ) -> dict | None:
        headers = None
        if session is not None:
            headers = {"authorization": f"Bearer {session.token}", "x-team-id": session.team_id}
        try:
            response = self._session.request(
                method,
                self._url(path),
                json=json_payload,
                headers=headers,
                timeout=self.timeout,
            )
        except Exception as exc:
            raise RemoteAuthorityError(str(exc)) from exc

        if allow_missing and response.status_code == 404:
            return None
        if response.status_code >= 400:
            body: object | None = None
            detail: object | None = None
            error_code: str | None = None
            try:
                body = response.json()
            except Exception:
                body = None
            if isinstance(body, dict):
                detail = body.get("detail")
                raw_error_code = body.get("error_code")
                error_code = str(raw_error_code) if isinstance(raw_error_code, str) else None
            if isinstance(detail, str):
                message = f"authority request failed: {response.status_code} {detail}"
            else:
                message = f"authority request failed: {response.status_code} {response.text}"
            raise RemoteAuthorityRequestError(
                message,
                status_code=response.status_code,
                detail=detail,
                error_code=error_code,
                body=body,
            )
        if response.status_code == 204:
            return {}
        return response.json()

    def authenticate(self, params: AuthorityParams) -> Session:
        payload = {"apple_id": params.apple_id, "password": params.password}
        if params.team_id:
            payload["team_id"] = params.team_id
        try:
            result = self._request("POST", "/v1/auth/sessions", json_payload=payload)
        except RemoteAuthorityRequestError as exc:
            if exc.status_code in (401, 403):
                raise AuthError(
                    f"authentication failed for {params.apple_id}",
                    status_code=exc.status_code,
                    detail=exc.detail,
                    error_code=exc.error_code,
                    body=exc.body,
                ) from exc
            raise
        token = result.get("session_token") if result else None
        team_id = result.get("team_id") if result else None
        if not isinstance(token, str) or not isinstance(team_id, str):
            raise AuthError("authority did not return a session token and team id")
        logger.info("authenticated with remote authority as %s (team %s)", params.apple_id, team_id)
        return Session(token=token, team_id=team_id, team_name=result.get("team_name"))

    def ensure_app_registered(
        self,
        session: Session,
        experience_name: str,
        bundle_identifier: str,
        capabilities: tuple[str, ...] = (PUSH_NOTIFICATIONS,),
    ) -> dict:
        """Register the bundle identifier and enable capabilities; safe to repeat."""
        app_path = f"/v1/apps/{quote(bundle_identifier, safe='')}"
        app = self._request("GET", app_path, session=session, allow_missing=True)
        if app is None:
            logger.info("registering %s with remote authority", bundle_identifier)
            app = self._request(
                "POST",
                "/v1/apps",
                session=session,
                json_payload={"bundle_identifier": bundle_identifier, "name": experience_name},
            )
        enabled = set(app.get("capabilities") or [])
        missing = [capability for capability in capabilities if capability not in enabled]
        if missing:
            app = self._request(
                "PATCH",
                f"{app_path}/capabilities",
                session=session,
                json_payload={"enable": missing},
            )
        return app

    def list_distribution_certificates(self, session: Session) -> list[dict]:
        result = self._request("GET", "/v1/certificates/distribution", session=session)
        return list(result.get("certificates") or [])

    def create_distribution_certificate(self, session: Session, csr_pem: str) -> dict:
        return self._request(
            "POST",
            "/v1/certificates/distribution",
            session=session,
            json_payload={"csr_pem": csr_pem},
        )

    def revoke_distribution_certificate(self, session: Session, certificate_id: str) -> None:
        self._request(
            "DELETE",
            f"/v1/certificates/distribution/{quote(certificate_id, safe='')}",
            session=session,
            allow_missing=True,
        )

    def list_push_keys(self, session: Session) -> list[dict]:
        result = self._request("GET", "/v1/keys/push", session=session)
        return list(result.get("keys") or [])

    def create_push_key(self, session: Session, name: str) -> dict:
        return self._request("POST", "/v1/keys/push", session=session, json_payload={"name": name})

    def revoke_push_key(self, session: Session, key_id: str) -> None:
        self._request(
            "DELETE",
            f"/v1/keys/push/{quote(key_id, safe='')}",
            session=session,
            allow_missing=True,
        )

    def list_provisioning_profiles(self, session: Session, bundle_identifier: str) -> list[dict]:
        result = self._request(
            "GET",
            f"/v1/profiles?bundle_identifier={quote(bundle_identifier, safe='')}",
            session=session,
        )
        return list(result.get("profiles") or [])

    def create_provisioning_profile(
        self,
        session: Session,
        bundle_identifier: str,
        certificate_serial: str,
    ) -> dict:
        return self._request(
            "POST",
            "/v1/profiles",
            session=session,
            json_payload={
                "bundle_identifier": bundle_identifier,
                "certificate_serial_number": certificate_serial,
                "profile_type": "app_store",
            },
        )

    def revoke_provisioning_profile(self, session: Session, profile_id: str) -> None:
        self._request(
            "DELETE",
            f"/v1/profiles/{quote(profile_id, safe='')}",
            session=session,
            allow_missing=True,
        )


__all__ = [
    "AuthorityParams",
    "PUSH_NOTIFICATIONS",
    "RemoteAuthorityClient",
    "Session",
]
