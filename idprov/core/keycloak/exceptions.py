"""Errors raised by the Keycloak-backed credential store."""
from __future__ import annotations


class KeycloakError(Exception):
    """Credential store call failed."""


class KeycloakAPIError(KeycloakError):
    """Keycloak answered with an HTTP error, or could not be reached.

    Transport failures use status 503.
    """

    def __init__(self, status_code: int, message: str, endpoint: str):
        self.status_code = status_code
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {message}")

    @classmethod
    def from_response(cls, resp) -> "KeycloakAPIError":
        return cls(resp.status_code, resp.text, resp.url)

    @property
    def conflict(self) -> bool:
        return self.status_code == 409


class UserNotFoundError(KeycloakError):
    """No user has exactly this username in the realm."""

    def __init__(self, username: str, realm: str = ""):
        self.username = username
        self.realm = realm
        where = f" in realm '{realm}'" if realm else ""
        super().__init__(f"User '{username}' not found{where}")


class UserAlreadyExistsError(KeycloakError):
    """Create rejected because the username is taken."""

    def __init__(self, username: str, realm: str = ""):
        self.username = username
        self.realm = realm
        where = f" in realm '{realm}'" if realm else ""
        super().__init__(f"User '{username}' already exists{where}")


class AuthenticationFailedError(KeycloakError):
    """Password grant rejected: wrong password, unknown user or user not confirmed."""
