"""Input validation helpers for registration and attribute updates."""
from __future__ import annotations
import re

from idprov.core.errors import ValidationFailure

NAME_MAX_LENGTH = 20

# E.164: "+" then 1-15 ASCII digits
E164_PATTERN = re.compile(r"^\+[0-9]{1,15}$")
_WHITESPACE = re.compile(r"\s")


def normalize_username(raw: str) -> str:
    """Lowercase and trim a username; the result keys both stores.

    Raises:
        ValidationFailure: If the username is blank
    """
    normalized = (raw or "").strip().lower()
    if not normalized:
        raise ValidationFailure("username is required", "username")
    return normalized


def normalize_phone_number(raw: str) -> str:
    """Strip whitespace and return the ``+``-prefixed E.164 form.

    A caller-supplied leading ``+`` is kept as is rather than doubled.

    Raises:
        ValidationFailure: If the result is not E.164 shaped
    """
    digits = _WHITESPACE.sub("", raw or "")
    candidate = digits if digits.startswith("+") else f"+{digits}"
    if not E164_PATTERN.match(candidate):
        raise ValidationFailure("no valid phone number", "phone_number")
    return candidate


def validate_name(name: str, field: str) -> str:
    """Validate given/family name fields.

    Returns:
        The name unchanged

    Raises:
        ValidationFailure: If blank or longer than NAME_MAX_LENGTH
    """
    if not name or not name.strip():
        raise ValidationFailure(f"{field} is required", field)
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationFailure(f"{field} is longer than {NAME_MAX_LENGTH} letters", field)
    return name


def require_fields(**values: str) -> None:
    """Reject any blank value, naming every missing field at once."""
    missing = [name for name, value in values.items() if not value or not str(value).strip()]
    if missing:
        raise ValidationFailure(f"please specify all fields (missing: {', '.join(missing)})", missing[0])
