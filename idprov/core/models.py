"""Value objects shared by the provisioning, sync and API layers."""
from __future__ import annotations
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


# Attribute names as stored on both the credential record and the profile record
GIVEN_NAME = "given_name"
FAMILY_NAME = "family_name"
PHONE_NUMBER = "phone_number"
EXTERNAL_REF = "external_ref"
CORRELATION_ID = "correlation_id"


def new_correlation_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ProvisioningRequest:
    """Input aggregate for one registration attempt.

    Built once per request and never mutated while the saga runs.
    ``username`` is kept as supplied; the saga works on
    :attr:`identity`, the lowercased form that keys both stores.
    """
    username: str
    password: str
    phone_number: str
    given_name: str
    family_name: str
    external_ref: str
    correlation_id: str = field(default_factory=new_correlation_id)

    @property
    def identity(self) -> str:
        return (self.username or "").strip().lower()

    @classmethod
    def from_params(cls, params: Dict[str, Any], correlation_id: Optional[str] = None) -> "ProvisioningRequest":
        """Build a request from query-string style parameters.

        Missing keys become empty strings so that validation, not a
        KeyError, reports them.
        """
        return cls(
            username=params.get("username") or "",
            password=params.get("password") or "",
            phone_number=params.get("phone_number") or "",
            given_name=params.get("given_name") or "",
            family_name=params.get("family_name") or "",
            external_ref=params.get("id") or params.get("external_ref") or "",
            correlation_id=correlation_id or new_correlation_id(),
        )


@dataclass
class CredentialRecord:
    """Credential-holder record as seen through the Keycloak Admin API."""
    username: str
    user_id: str
    confirmed: bool
    attributes: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_keycloak(cls, kc_user: dict) -> "CredentialRecord":
        # Keycloak stores custom attributes as lists of strings
        attributes = {
            name: values[0] if isinstance(values, list) and values else values
            for name, values in (kc_user.get("attributes") or {}).items()
        }
        if kc_user.get("firstName") is not None:
            attributes.setdefault(GIVEN_NAME, kc_user["firstName"])
        if kc_user.get("lastName") is not None:
            attributes.setdefault(FAMILY_NAME, kc_user["lastName"])
        return cls(
            username=kc_user.get("username", ""),
            user_id=kc_user.get("id", ""),
            confirmed=bool(kc_user.get("enabled")),
            attributes=attributes,
        )
