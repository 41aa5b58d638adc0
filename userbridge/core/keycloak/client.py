"""Low-level HTTP client for the Keycloak token endpoint and Admin API.

Handles admin authentication, bearer headers, timeouts and error mapping.
Tokens are held per client instance only; callers build a fresh client for
every workflow invocation so an admin token is never reused across requests.
"""
from __future__ import annotations
import logging
import os
from typing import Optional, Dict, Any

import requests

from .exceptions import KeycloakAPIError, KeycloakUnavailableError

REQUEST_TIMEOUT = 5
TRANSIENT_RETRIES = 0

ADMIN_CLIENT_ID = "admin-cli"

logger = logging.getLogger(__name__)


class KeycloakClient:
    """HTTP client for Keycloak with explicit, per-instance admin tokens.

    Usage:
        client = KeycloakClient("http://keycloak:8080")
        client.authenticate_admin("admin", "password")
        response = client.get("/admin/realms/demo/users")
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        token: Optional[str] = None,
    ):
        """Initialize Keycloak client.

        Args:
            base_url: Keycloak base URL (defaults to KEYCLOAK_URL env var)
            timeout: Per-request timeout in seconds
            retries: Extra attempts on connection errors/timeouts (0 = single attempt)
            token: Admin token obtained elsewhere; skips authenticate_admin
        """
        self.base_url = (base_url or os.environ.get("KEYCLOAK_URL", "http://keycloak:8080")).rstrip("/")
        self.timeout = REQUEST_TIMEOUT if timeout is None else timeout
        self.retries = TRANSIENT_RETRIES if retries is None else max(0, int(retries))
        self._token: Optional[str] = token

    @property
    def token(self) -> Optional[str]:
        return self._token

    def authenticate_admin(self, username: str, password: str, realm: str = "master") -> str:
        """Fetch an admin token via direct access grant and keep it on this client.

        Args:
            username: Admin username
            password: Admin password
            realm: Authentication realm (default: master)

        Returns:
            Access token

        Raises:
            KeycloakAPIError: Non-2xx answer from the token endpoint
            KeycloakUnavailableError: Transport failure
        """
        self._token = self._get_admin_token(username, password, realm)
        return self._token

    def password_grant(
        self,
        realm: str,
        client_id: str,
        client_secret: str,
        username: str,
        password: str,
        scope: str = "openid profile email",
    ) -> Dict[str, Any]:
        """Exchange end-user credentials for a token bundle.

        The provider response is returned verbatim.
        """
        url = self._token_url(realm)
        data = {
            "grant_type": "password",
            "client_id": client_id,
            "username": username,
            "password": password,
            "scope": scope,
        }
        if client_secret:
            data["client_secret"] = client_secret
        resp = self._send("post", url, data=data)
        if not 200 <= resp.status_code < 300:
            raise KeycloakAPIError(resp.status_code, resp.text, url)
        return resp.json()

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute authenticated GET request.

        Raises:
            KeycloakAPIError: On HTTP error
        """
        return self._authorized("get", path, params=params, **kwargs)

    def post(self, path: str, json: Any = None, data: Optional[Dict] = None, **kwargs) -> requests.Response:
        """Execute authenticated POST request."""
        return self._authorized("post", path, json=json, data=data, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs) -> requests.Response:
        """Execute authenticated PUT request."""
        return self._authorized("put", path, json=json, **kwargs)

    def delete(self, path: str, json: Any = None, **kwargs) -> requests.Response:
        """Execute authenticated DELETE request (Keycloak accepts a body on role-mapping deletes)."""
        return self._authorized("delete", path, json=json, **kwargs)

    def _authorized(self, method: str, path: str, **kwargs) -> requests.Response:
        if not self._token:
            raise KeycloakAPIError(401, "Not authenticated - call authenticate_admin first", path)
        url = f"{self.base_url}{path}"
        headers = kwargs.pop("headers", None) or {}
        headers["Authorization"] = f"Bearer {self._token}"
        resp = self._send(method, url, headers=headers, **kwargs)
        self._handle_error(resp)
        return resp

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Issue one HTTP call, retrying only transport-level failures."""
        sender = getattr(requests, method)
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return sender(url, timeout=self.timeout, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as exc:
                if attempt >= attempts:
                    raise KeycloakUnavailableError(url, str(exc)) from exc
                logger.warning("[keycloak] %s %s failed (%s), retrying (%d/%d)", method.upper(), url, exc, attempt, self.retries)
        raise KeycloakUnavailableError(url, "no attempt made")

    def _token_url(self, realm: str) -> str:
        return f"{self.base_url}/realms/{realm}/protocol/openid-connect/token"

    def _get_admin_token(self, username: str, password: str, realm: str = "master") -> str:
        """Obtain an admin token via direct access grant."""
        url = self._token_url(realm)
        data = {
            "grant_type": "password",
            "client_id": ADMIN_CLIENT_ID,
            "username": username,
            "password": password,
        }
        resp = self._send("post", url, data=data)
        if not 200 <= resp.status_code < 300:
            raise KeycloakAPIError(resp.status_code, resp.text, url)
        return resp.json()["access_token"]

    def _handle_error(self, resp: requests.Response) -> None:
        """Centralized error handling for HTTP responses.

        Raises:
            KeycloakAPIError: If response status indicates error
        """
        if resp.status_code >= 400:
            raise KeycloakAPIError(resp.status_code, resp.text, resp.url)
