"""Two-store attribute update (credential attribute, then profile field).

There is no rollback: setting the same credential attribute twice is
harmless, so a caller that sees a failure after the credential update simply
retries the whole operation.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from idprov.core import validators
from idprov.core.audit import AuditTrail
from idprov.core.errors import ErrorType, ValidationFailure
from idprov.core.models import FAMILY_NAME, GIVEN_NAME

logger = logging.getLogger(__name__)

SYNCABLE_FIELDS = frozenset({GIVEN_NAME, FAMILY_NAME})


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    username: str
    record: Dict[str, Any] = field(default_factory=dict)
    reason: str = ""
    error_type: Optional[ErrorType] = None
    failed_step: Optional[str] = None


class AttributeSync:
    """Update one attribute on the credential record and mirror it to the profile."""

    def __init__(self, credentials, profiles, audit: Optional[AuditTrail] = None, operator: str = "api"):
        self.credentials = credentials
        self.profiles = profiles
        self.audit = audit
        self.operator = operator

    def sync(self, username: str, field_name: str, value: str) -> SyncResult:
        try:
            username = validators.normalize_username(username)
            if field_name not in SYNCABLE_FIELDS:
                raise ValidationFailure(f"{field_name} cannot be updated", field_name)
            value = validators.validate_name(value, field_name)
        except ValidationFailure as exc:
            return SyncResult(
                ok=False,
                username=(username or "").strip().lower(),
                reason=str(exc),
                error_type=ErrorType.VALIDATION_FAILURE,
            )

        try:
            self.credentials.update_attributes(username, {field_name: value})
        except Exception as exc:
            logger.error("[sync] Credential update of '%s' failed for '%s': %s", field_name, username, exc, exc_info=True)
            return self._failed(username, field_name, "credentials", exc)

        try:
            record = self.profiles.update(username, field_name, value)
        except Exception as exc:
            # Stores now disagree until the caller retries
            logger.error(
                "[sync] Profile update of '%s' failed for '%s' after credential update: %s",
                field_name, username, exc, exc_info=True,
            )
            return self._failed(username, field_name, "profile", exc)

        logger.info("[sync] '%s' updated for '%s'", field_name, username)
        if self.audit:
            self.audit.safe_log_event(
                "attribute_sync", username, operator=self.operator, details={"field": field_name}, success=True
            )
        return SyncResult(ok=True, username=username, record=record)

    def _failed(self, username: str, field_name: str, step: str, exc: Exception) -> SyncResult:
        if self.audit:
            self.audit.safe_log_event(
                "attribute_sync_failed",
                username,
                operator=self.operator,
                details={"field": field_name, "failed_step": step, "error": str(exc)},
                success=False,
            )
        return SyncResult(
            ok=False,
            username=username,
            reason=str(exc),
            error_type=ErrorType.REMOTE_STORE_FAILURE,
            failed_step=step,
        )
