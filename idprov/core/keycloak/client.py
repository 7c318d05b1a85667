"""Authenticated HTTP access to the Keycloak Admin REST API.

The client holds a service account (client credentials grant) and attaches
its bearer token to every admin call. Tokens are fetched lazily and
refreshed shortly before ``expires_in`` runs out.
"""
from __future__ import annotations
import logging
import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import requests

from .exceptions import KeycloakAPIError

REQUEST_TIMEOUT = 5
# Refresh this long before the service token actually expires
TOKEN_REFRESH_MARGIN = timedelta(seconds=10)

logger = logging.getLogger(__name__)


class KeycloakClient:
    """Admin API client for one Keycloak server.

    Usage:
        client = KeycloakClient("http://keycloak:8080")
        client.configure_service_account("demo", "automation-cli", "secret")
        client.get("/admin/realms/demo/users", params={"username": "bob"})
    """

    def __init__(self, base_url: Optional[str] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or os.environ.get("KEYCLOAK_URL", "http://keycloak:8080")).rstrip("/")
        self.session = session or requests.Session()
        self._service_account: Dict[str, str] = {}
        self._token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None

    def configure_service_account(self, auth_realm: str, client_id: str, client_secret: str) -> None:
        """Set the service account used for admin calls.

        No token is requested here; the first admin call does that.
        """
        self._service_account = {
            "auth_realm": auth_realm,
            "client_id": client_id,
            "client_secret": client_secret,
        }
        self._token = None
        self._token_expires_at = None

    def token_endpoint(self, realm: str) -> str:
        return f"{self.base_url}/realms/{realm}/protocol/openid-connect/token"

    # ─────────────────────────────────────────────────────────────────────
    # Service account token
    # ─────────────────────────────────────────────────────────────────────

    def _token_is_fresh(self) -> bool:
        return bool(
            self._token
            and self._token_expires_at
            and datetime.now() < self._token_expires_at - TOKEN_REFRESH_MARGIN
        )

    def _service_token(self) -> str:
        if not self._service_account:
            raise KeycloakAPIError(401, "No service account configured", self.base_url)
        if self._token_is_fresh():
            return self._token

        url = self.token_endpoint(self._service_account["auth_realm"])
        try:
            resp = self.session.post(
                url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._service_account["client_id"],
                    "client_secret": self._service_account["client_secret"],
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise KeycloakAPIError(503, str(exc), url) from exc
        if resp.status_code != 200:
            raise KeycloakAPIError(resp.status_code, resp.text, url)

        body = resp.json()
        self._token = body["access_token"]
        self._token_expires_at = datetime.now() + timedelta(seconds=int(body.get("expires_in", 60)))
        logger.debug("Service account token refreshed for client %s", self._service_account["client_id"])
        return self._token

    # ─────────────────────────────────────────────────────────────────────
    # Admin calls
    # ─────────────────────────────────────────────────────────────────────

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send one admin call.

        Raises:
            KeycloakAPIError: On HTTP status >= 400 or a transport failure
        """
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self._service_token()}"
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs)
        except requests.RequestException as exc:
            raise KeycloakAPIError(503, str(exc), url) from exc
        if resp.status_code >= 400:
            raise KeycloakAPIError.from_response(resp)
        return resp

    def get(self, path: str, params: Optional[Dict[str, str]] = None) -> requests.Response:
        return self._request("GET", path, params=params)

    def post(self, path: str, json: Optional[Dict[str, Any]] = None) -> requests.Response:
        return self._request("POST", path, json=json)

    def put(self, path: str, json: Optional[Dict[str, Any]] = None) -> requests.Response:
        return self._request("PUT", path, json=json)

    def delete(self, path: str) -> requests.Response:
        return self._request("DELETE", path)
