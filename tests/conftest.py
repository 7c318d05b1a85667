"""Pytest shared fixtures: in-memory stores, app client, token helpers."""
import pathlib
import sys
import time
from typing import Optional

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from authlib.jose import jwt as authlib_jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from idprov.api.services import Services
from idprov.config import AppConfig
from idprov.core.audit import AuditTrail
from idprov.core.keycloak.exceptions import (
    AuthenticationFailedError,
    UserAlreadyExistsError,
    UserNotFoundError,
)
from idprov.core.models import CredentialRecord
from idprov.core.profiles import ProfileNotFoundError
from idprov.core.tokens import TokenReader
from idprov.flask_app import create_app


# ─────────────────────────────────────────────────────────────────────────────
# In-memory stores
# ─────────────────────────────────────────────────────────────────────────────
class FakeCredentialStore:
    """Credential store double recording every call.

    Set ``fail_on[<operation>] = exc`` to make an operation raise.
    """

    def __init__(self):
        self.records: dict[str, CredentialRecord] = {}
        self.passwords: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[str, Exception] = {}

    def _enter(self, operation: str, username: str) -> None:
        self.calls.append((operation, username))
        exc = self.fail_on.get(operation)
        if exc is not None:
            raise exc

    def _require(self, username: str) -> CredentialRecord:
        if username not in self.records:
            raise UserNotFoundError(username)
        return self.records[username]

    def create(self, username, password, attributes):
        self._enter("create", username)
        if username in self.records:
            raise UserAlreadyExistsError(username)
        record = CredentialRecord(username=username, user_id=f"id-{username}", confirmed=False,
                                  attributes=dict(attributes))
        self.records[username] = record
        self.passwords[username] = password
        return record

    def confirm(self, username):
        self._enter("confirm", username)
        self._require(username).confirmed = True

    def update_attributes(self, username, attributes):
        self._enter("update_attributes", username)
        self._require(username).attributes.update(attributes)

    def delete(self, username):
        self._enter("delete", username)
        self._require(username)
        del self.records[username]
        self.passwords.pop(username, None)

    def get(self, username):
        self._enter("get", username)
        return self._require(username)

    def authenticate(self, username, password):
        self._enter("authenticate", username)
        record = self.records.get(username)
        if not record or not record.confirmed or self.passwords.get(username) != password:
            raise AuthenticationFailedError(f"Login rejected for '{username}'")
        return {"access_token": make_token(username=username), "expires_in": 300}


class FakeProfileStore:
    def __init__(self):
        self.items: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: dict[str, Exception] = {}

    def _enter(self, operation: str, username: str) -> None:
        self.calls.append((operation, username))
        exc = self.fail_on.get(operation)
        if exc is not None:
            raise exc

    def put(self, username, record):
        self._enter("put", username)
        item = dict(record)
        item["username"] = username
        self.items[username] = item

    def update(self, username, field, value):
        self._enter("update", username)
        if username not in self.items:
            raise ProfileNotFoundError(f"Profile '{username}' not found")
        self.items[username][field] = value
        return dict(self.items[username])

    def query(self, username):
        self._enter("query", username)
        return [dict(self.items[username])] if username in self.items else []


@pytest.fixture()
def credentials():
    return FakeCredentialStore()


@pytest.fixture()
def profiles():
    return FakeProfileStore()


@pytest.fixture()
def audit(tmp_path):
    return AuditTrail(tmp_path / "audit", "test-signing-key-for-audit-trail")


# ─────────────────────────────────────────────────────────────────────────────
# Flask Test Client
# ─────────────────────────────────────────────────────────────────────────────
def make_config(**overrides) -> AppConfig:
    base = dict(
        demo_mode=True,
        keycloak_url="http://keycloak.test:8080",
        keycloak_realm="demo",
        keycloak_service_realm="demo",
        keycloak_issuer="https://localhost/realms/demo",
        keycloak_server_url="https://localhost/realms/demo",
        profile_table_name="ProfilesTable",
        aws_region="us-east-2",
        audit_log_dir="",
        audit_log_signing_key="test-signing-key-for-audit-trail",
        log_level="WARNING",
    )
    base.update(overrides)
    return AppConfig(**base)


@pytest.fixture()
def services(credentials, profiles, audit):
    return Services(credentials=credentials, profiles=profiles, token_reader=TokenReader(), audit=audit)


@pytest.fixture()
def client(services, tmp_path):
    flask_app = create_app(make_config(audit_log_dir=str(tmp_path / "audit")), services=services)
    flask_app.config.update(TESTING=True)
    with flask_app.test_client() as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# JWT helpers
# ─────────────────────────────────────────────────────────────────────────────
def make_token(username: Optional[str] = "bob", claim: str = "username", secret: str = "hs256-secret-that-is-never-checked-here", **extra) -> str:
    """HS256 token; signature is irrelevant when only decoding."""
    now = int(time.time())
    payload = {"sub": f"sub-{username}", "iat": now, "exp": now + 3600, **extra}
    if username is not None:
        payload[claim] = username
    token = authlib_jwt.encode({"alg": "HS256", "typ": "JWT"}, payload, secret)
    return token.decode("utf-8") if isinstance(token, bytes) else token


@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate RSA key pair for JWT signing in tests."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_key = private_key.public_key()
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return {"private_key": private_key, "public_key": public_key, "public_pem": public_pem}


def create_signed_jwt(
    rsa_key_pair: dict,
    issuer: str = "https://localhost/realms/demo",
    username: str = "alice",
    exp_offset: int = 3600,
    kid: str = "default-key-id",
) -> str:
    """Create an RS256-signed JWT for testing."""
    now = int(time.time())
    header = {"alg": "RS256", "typ": "JWT", "kid": kid}
    payload = {
        "iss": issuer,
        "sub": "user-123",
        "exp": now + exp_offset,
        "iat": now,
        "preferred_username": username,
    }
    token = authlib_jwt.encode(header, payload, rsa_key_pair["private_key"])
    return token.decode("utf-8") if isinstance(token, bytes) else token


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
