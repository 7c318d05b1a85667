"""Keycloak Admin API client library (credential store backend).

Architecture:
- client.py: HTTP client with service account authentication and auto-refresh
- users.py: Credential store operations (create, confirm, update, delete, login)
- exceptions.py: Typed exceptions for error handling

Usage:
    from idprov.core.keycloak import KeycloakClient, CredentialService

    client = KeycloakClient("http://keycloak:8080")
    client.configure_service_account("demo", "automation-cli", "secret")

    credentials = CredentialService(client, realm="demo", login_client_id="user-app")
    credentials.create("alice", "s3cret!", {"given_name": "Alice"})
"""
from .client import KeycloakClient, REQUEST_TIMEOUT
from .exceptions import (
    KeycloakError,
    KeycloakAPIError,
    UserNotFoundError,
    UserAlreadyExistsError,
    AuthenticationFailedError,
)
from .users import CredentialService

__all__ = [
    "KeycloakClient",
    "REQUEST_TIMEOUT",
    "CredentialService",
    "KeycloakError",
    "KeycloakAPIError",
    "UserNotFoundError",
    "UserAlreadyExistsError",
    "AuthenticationFailedError",
]
