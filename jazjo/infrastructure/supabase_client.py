"""
Thin synchronous client for the Supabase REST (PostgREST) and auth APIs.
"""
import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from jazjo.core.config import is_configured, settings
from jazjo.core.errors import ConfigurationError, ConflictError, UpstreamError

logger = logging.getLogger(__name__)


def in_filter(values: Iterable[str]) -> str:
    """PostgREST `in.(...)` filter; quotes are stripped from the values."""
    quoted = ",".join('"{}"'.format(str(v).replace('"', "")) for v in values)
    return f"in.({quoted})"


def eq(value) -> str:
    return f"eq.{value}"


class AuthRejected(Exception):
    """Supabase auth refused the credentials or token."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or f"Supabase error {response.status_code}"
    if isinstance(data, dict):
        return (data.get("message") or data.get("msg") or data.get("error_description")
                or data.get("error") or f"Supabase error {response.status_code}")
    return f"Supabase error {response.status_code}"


class SupabaseClient:
    def __init__(self, url: str = None, anon_key: str = None, service_role_key: str = None,
                 timeout: float = None, transport: httpx.BaseTransport = None):
        self.url = (url if url is not None else settings.SUPABASE_URL).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.SUPABASE_ANON_KEY
        self.service_role_key = (service_role_key if service_role_key is not None
                                 else settings.SUPABASE_SERVICE_ROLE_KEY)
        self.http = httpx.Client(
            base_url=self.url or "http://supabase.invalid",
            timeout=timeout or settings.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self):
        self.http.close()

    def _require(self, *values):
        if not self.url or not all(is_configured(v) for v in values):
            raise ConfigurationError(
                "Missing Supabase env vars. Check .env (SUPABASE_URL / ANON / SERVICE_ROLE)."
            )

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self.http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Supabase %s %s failed", method, path, exc_info=True)
            raise UpstreamError(f"Supabase request failed: {e}") from e

    # --- REST ---

    def rest(self, table: str, method: str = "GET", params: Optional[Dict[str, str]] = None,
             body: Any = None, prefer: Optional[str] = None) -> Any:
        """Service-role call against /rest/v1/<table>; returns the decoded JSON (or None)."""
        self._require(self.anon_key, self.service_role_key)
        headers = {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }
        if prefer:
            headers["Prefer"] = prefer
        response = self._send(method, f"/rest/v1/{table}", params=params, json=body, headers=headers)
        if response.status_code == 409:
            # Unique or foreign-key violation (Postgres 23505 / 23503).
            message = _error_message(response)
            logger.warning("Supabase %s %s -> 409: %s", method, table, message)
            raise ConflictError(message)
        if response.is_error:
            message = _error_message(response)
            logger.error("Supabase %s %s -> %s: %s", method, table, response.status_code, message)
            raise UpstreamError(message)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # --- Auth ---

    def auth_password_login(self, email: str, password: str) -> Dict[str, Any]:
        self._require(self.anon_key)
        response = self._send(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers={"apikey": self.anon_key},
        )
        return self._auth_result(response, "Login failed")

    def auth_user(self, access_token: str) -> Dict[str, Any]:
        self._require(self.anon_key)
        response = self._send(
            "GET", "/auth/v1/user",
            headers={"apikey": self.anon_key, "Authorization": f"Bearer {access_token}"},
        )
        return self._auth_result(response, "Invalid token")

    @staticmethod
    def _auth_result(response: httpx.Response, fallback: str) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error:
            # Auth rejections are the caller's problem, not an upstream outage.
            message = _error_message(response) if data else fallback
            raise AuthRejected(message, response.status_code)
        return data
