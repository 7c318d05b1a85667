"""Bearer token decoding.

Tokens are issued by Keycloak. By default they are only *decoded*: the
signature is trusted to have been checked upstream (reverse proxy or API
gateway). Pass a ``verifier`` to :class:`TokenReader` to check it here.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional

import jwt

from idprov.core.errors import MalformedToken, MissingClaim

logger = logging.getLogger(__name__)

DEFAULT_USERNAME_CLAIMS = ("username", "preferred_username")

# token -> verified claims; must raise MalformedToken on rejection
TokenVerifier = Callable[[str], Dict[str, Any]]


@dataclass(frozen=True)
class AccessClaim:
    """Identity asserted by a bearer token for the duration of one request."""
    username: str
    claims: Dict[str, Any] = field(default_factory=dict, repr=False)


def strip_bearer(value: str) -> str:
    value = (value or "").strip()
    if value[:7].lower() == "bearer ":
        return value[7:].strip()
    return value


class TokenReader:
    """Turn an opaque bearer token into an :class:`AccessClaim`."""

    def __init__(
        self,
        verifier: Optional[TokenVerifier] = None,
        claim_names: Iterable[str] = DEFAULT_USERNAME_CLAIMS,
    ):
        self.verifier = verifier
        self.claim_names = tuple(claim_names)

    def decode(self, token: str) -> Dict[str, Any]:
        """Return the token payload.

        Raises:
            MalformedToken: If the token is not a three-segment JWT or its
                payload is not a JSON object
        """
        token = strip_bearer(token)
        if not token or token.count(".") != 2:
            raise MalformedToken("Token must have three dot-separated segments")

        if self.verifier is not None:
            return self.verifier(token)

        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.exceptions.DecodeError as exc:
            raise MalformedToken(f"Token decode error (malformed JWT): {exc}") from exc

    def read(self, token: str) -> AccessClaim:
        """Decode the token and extract the claimed identity.

        Raises:
            MalformedToken: See :meth:`decode`
            MissingClaim: If none of the configured identity claims is set
        """
        claims = self.decode(token)
        for name in self.claim_names:
            value = claims.get(name)
            if isinstance(value, str) and value.strip():
                return AccessClaim(username=value.strip(), claims=claims)
        raise MissingClaim(f"Invalid token: missing {' / '.join(self.claim_names)} claim")
