"""Cross-store consistency check for a single identity (operator tooling)."""
from __future__ import annotations
from enum import Enum

from idprov.core.keycloak.exceptions import UserNotFoundError


class Consistency(str, Enum):
    CONSISTENT = "consistent"
    ABSENT = "absent"
    UNCONFIRMED = "unconfirmed"
    ORPHAN_CREDENTIAL = "orphan-credential"
    ORPHAN_PROFILE = "orphan-profile"


def check_identity(credentials, profiles, username: str) -> Consistency:
    """Classify how the two stores agree about ``username``.

    ``ORPHAN_CREDENTIAL`` (confirmed credential, no profile) and
    ``UNCONFIRMED`` are the states a failed compensation leaves behind.
    Remote errors propagate.
    """
    username = username.strip().lower()
    try:
        credential = credentials.get(username)
    except UserNotFoundError:
        credential = None
    has_profile = bool(profiles.query(username))

    if credential is None:
        return Consistency.ORPHAN_PROFILE if has_profile else Consistency.ABSENT
    if not credential.confirmed:
        return Consistency.UNCONFIRMED
    return Consistency.CONSISTENT if has_profile else Consistency.ORPHAN_CREDENTIAL
