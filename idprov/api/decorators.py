"""
Flask decorators for bearer-token authentication.

Tokens are read with the application's :class:`~idprov.core.tokens.TokenReader`.
When ``TOKEN_VERIFY_SIGNATURE=true`` the reader is given a
:class:`JwksTokenVerifier`, which checks:
- RSA-SHA256 signature via the realm JWKS (RFC 7517)
- Expiration and issuer (RFC 7519)
Otherwise the token is decoded only, and signature checks are expected to
happen upstream.
"""

import hashlib
import logging
from functools import wraps
from typing import Dict, Optional

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)
from flask import request, jsonify, g

from idprov.api.services import get_services
from idprov.core.errors import MalformedToken, TokenError
from idprov.core.tokens import AccessClaim

logger = logging.getLogger(__name__)


class JwksTokenVerifier:
    """Verify RS256 bearer tokens against the realm's JWKS endpoint.

    The JWKS client is created on first use and caches keys for an hour.
    """

    def __init__(self, server_url: str, issuer: str, leeway: int = 5):
        self.jwks_url = f"{server_url.rstrip('/')}/protocol/openid-connect/certs"
        self.issuer = issuer
        self.leeway = leeway
        self._jwks_client: Optional[PyJWKClient] = None

    def _client(self) -> PyJWKClient:
        if self._jwks_client is None:
            logger.info("Initializing JWKS client for: %s", self.jwks_url)
            self._jwks_client = PyJWKClient(
                self.jwks_url,
                cache_keys=True,
                max_cached_keys=16,
                lifespan=3600,
                headers={"User-Agent": "idprov/1.0"},
            )
        return self._jwks_client

    def __call__(self, token: str) -> Dict[str, object]:
        """Return verified claims.

        Raises:
            MalformedToken: If any check fails
        """
        try:
            signing_key = self._client().get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_iss": True,
                    "verify_aud": False,
                    "require": ["exp", "iat"],
                },
                leeway=self.leeway,
            )
        except ExpiredSignatureError as e:
            raise MalformedToken("Token expired (exp claim)") from e
        except InvalidIssuerError as e:
            raise MalformedToken(f"Invalid issuer (token from wrong realm): {e}") from e
        except InvalidSignatureError as e:
            raise MalformedToken("Invalid signature (token tampered or wrong key)") from e
        except DecodeError as e:
            raise MalformedToken(f"Token decode error (malformed JWT): {e}") from e
        except (InvalidTokenError, PyJWKClientError) as e:
            raise MalformedToken(f"Token validation failed: {e}") from e


def _unauthorized(error: str, message: str):
    return jsonify({"error": error, "message": message}), 401


def token_fingerprint(token: str) -> str:
    """Truncated SHA-256 of a token, safe to log."""
    return hashlib.sha256(token.encode()).hexdigest()[:12]


def require_access_claim(fn):
    """Require a readable bearer token and expose its claim as ``g.access_claim``.

    The ``Authorization`` header may carry either ``Bearer <token>`` or
    the bare token.

    Returns 401 when the header is missing or the token cannot be read.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "").strip()
        if not auth_header:
            logger.warning("Request to %s missing Authorization header", request.path)
            return _unauthorized(
                "Unauthorized",
                "Authorization header required. Use 'Authorization: Bearer <token>'",
            )

        try:
            claim = get_services().token_reader.read(auth_header)
        except TokenError as e:
            logger.warning(
                "Bearer token rejected | token_hash=%s | path=%s | reason=%s",
                token_fingerprint(auth_header), request.path, e,
            )
            return _unauthorized(e.error_type.value, str(e))

        g.access_claim = claim
        return fn(*args, **kwargs)

    return wrapper


def get_access_claim() -> Optional[AccessClaim]:
    """Claim attached by :func:`require_access_claim`, if any."""
    return getattr(g, "access_claim", None)
