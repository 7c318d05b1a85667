"""Keycloak user operations backing the credential store."""
from __future__ import annotations
import logging
from typing import Dict, Optional

import requests
from authlib.integrations.base_client import OAuthError
from authlib.integrations.requests_client import OAuth2Session

from idprov.core.models import CredentialRecord, GIVEN_NAME, FAMILY_NAME
from .client import KeycloakClient, REQUEST_TIMEOUT
from .exceptions import (
    AuthenticationFailedError,
    KeycloakAPIError,
    UserAlreadyExistsError,
    UserNotFoundError,
)

logger = logging.getLogger(__name__)

# Profile attributes that also live on Keycloak's first-class user fields
_NATIVE_FIELDS = {GIVEN_NAME: "firstName", FAMILY_NAME: "lastName"}


class CredentialService:
    """Credential store operations for a single Keycloak realm.

    Users are created disabled; ``confirm`` enables them. A disabled user
    cannot obtain tokens, which is what "unconfirmed" means here.
    """

    def __init__(
        self,
        client: KeycloakClient,
        realm: str,
        login_client_id: str = "",
        login_client_secret: str = "",
    ):
        """Initialize credential service.

        Args:
            client: Keycloak client configured with service account credentials
            realm: Realm holding the end users
            login_client_id: Public/confidential client used for the password grant
            login_client_secret: Secret of the login client, if confidential
        """
        self.client = client
        self.realm = realm
        self.login_client_id = login_client_id
        self.login_client_secret = login_client_secret

    @property
    def _users_path(self) -> str:
        return f"/admin/realms/{self.realm}/users"

    def _find(self, username: str) -> Optional[dict]:
        """Return the user representation that exactly matches the username."""
        resp = self.client.get(self._users_path, params={"username": username, "exact": "true"})
        for user in resp.json() or []:
            if user.get("username") == username:
                return user
        return None

    def _require(self, username: str) -> dict:
        user = self._find(username)
        if not user:
            raise UserNotFoundError(username, self.realm)
        return user

    def create(self, username: str, password: str, attributes: Dict[str, str]) -> CredentialRecord:
        """Create an unconfirmed user carrying the secret and provider-side attributes.

        Raises:
            UserAlreadyExistsError: If the username is taken (HTTP 409)
            KeycloakAPIError: On any other HTTP error
        """
        payload = {
            "username": username,
            "enabled": False,
            "emailVerified": False,
            "attributes": {name: [value] for name, value in attributes.items()},
            "credentials": [{"type": "password", "value": password, "temporary": False}],
        }
        for field, native in _NATIVE_FIELDS.items():
            if field in attributes:
                payload[native] = attributes[field]

        try:
            resp = self.client.post(self._users_path, json=payload)
        except KeycloakAPIError as exc:
            if exc.conflict:
                raise UserAlreadyExistsError(username, self.realm) from exc
            raise

        # Keycloak answers 201 with the new user URL in Location
        location = resp.headers.get("Location", "")
        user_id = location.rstrip("/").rsplit("/", 1)[-1] if location else ""
        logger.info("[credentials] User '%s' created (id=%s, unconfirmed)", username, user_id or "?")
        return CredentialRecord(username=username, user_id=user_id, confirmed=False, attributes=dict(attributes))

    def confirm(self, username: str) -> None:
        """Mark the user as confirmed (enabled, verified)."""
        user = self._require(username)
        self.client.put(f"{self._users_path}/{user['id']}", json={"enabled": True, "emailVerified": True})
        logger.info("[credentials] User '%s' confirmed", username)

    def update_attributes(self, username: str, attributes: Dict[str, str]) -> None:
        """Set named attributes on the user without dropping the other ones."""
        user = self._require(username)
        merged = dict(user.get("attributes") or {})
        for name, value in attributes.items():
            merged[name] = [value]
        user["attributes"] = merged
        for field, native in _NATIVE_FIELDS.items():
            if field in attributes:
                user[native] = attributes[field]
        self.client.put(f"{self._users_path}/{user['id']}", json=user)
        logger.info("[credentials] Attributes %s updated for '%s'", sorted(attributes), username)

    def delete(self, username: str) -> None:
        user = self._require(username)
        self.client.delete(f"{self._users_path}/{user['id']}")
        logger.info("[credentials] User '%s' deleted", username)

    def get(self, username: str) -> CredentialRecord:
        return CredentialRecord.from_keycloak(self._require(username))

    def authenticate(self, username: str, password: str) -> dict:
        """Exchange username/password for tokens (resource owner password grant).

        Returns:
            Token response (access_token, expires_in, refresh_token, ...)

        Raises:
            AuthenticationFailedError: If the realm rejects the credentials
            KeycloakAPIError: If the token endpoint cannot be reached
        """
        session = OAuth2Session(
            client_id=self.login_client_id,
            client_secret=self.login_client_secret or None,
        )
        url = self.client.token_endpoint(self.realm)
        try:
            return session.fetch_token(
                url,
                grant_type="password",
                username=username,
                password=password,
                timeout=REQUEST_TIMEOUT,
            )
        except OAuthError as exc:
            raise AuthenticationFailedError(f"Login rejected for '{username}': {exc.description or exc.error}") from exc
        except requests.RequestException as exc:
            raise KeycloakAPIError(503, str(exc), url) from exc
        finally:
            session.close()
