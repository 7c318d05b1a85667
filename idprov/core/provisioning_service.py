"""
Provisioning service layer: account creation saga

Creating an account writes to two stores that share no transaction:

    register ──> [1] create credential (Keycloak, unconfirmed)
             ──> [2] confirm credential
             ──> [3] mirror attributes into the profile table (DynamoDB)

Each step runs only after the previous one succeeded. When step 2 or 3
fails, the credential created in step 1 is deleted (one attempt, no retry)
so that no confirmed credential is left without a profile. A failed delete
is logged and audited for operator follow-up; the caller still gets the
original failure.

Every outcome is returned as a :class:`ProvisioningResult`; nothing in
here raises for expected failures.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from idprov.core import validators
from idprov.core.audit import AuditTrail
from idprov.core.errors import ErrorType, ValidationFailure
from idprov.core.keycloak.exceptions import UserAlreadyExistsError
from idprov.core.models import (
    CORRELATION_ID,
    EXTERNAL_REF,
    FAMILY_NAME,
    GIVEN_NAME,
    PHONE_NUMBER,
    ProvisioningRequest,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Error during user registration"


class SagaState(str, Enum):
    PENDING = "pending"
    CREATED = "created"
    CONFIRMED = "confirmed"
    MIRRORED = "mirrored"
    SUCCEEDED = "succeeded"
    VALIDATION_FAILURE = "validation_failure"
    TERMINAL_FAILURE = "terminal_failure"
    COMPENSATED_FAILURE = "compensated_failure"


class Step(str, Enum):
    CREATE = "create"
    CONFIRM = "confirm"
    MIRROR = "mirror"


@dataclass(frozen=True)
class StepOutcome:
    ok: bool
    error: Optional[Exception] = None


@dataclass(frozen=True)
class ProvisioningResult:
    """Terminal outcome of one saga run."""
    state: SagaState
    username: str
    external_ref: Optional[str] = None
    reason: str = ""
    error_type: Optional[ErrorType] = None
    failed_step: Optional[Step] = None
    compensation_error: Optional[str] = None
    history: Tuple[SagaState, ...] = ()

    @property
    def ok(self) -> bool:
        return self.state is SagaState.SUCCEEDED

    @property
    def compensated(self) -> bool:
        """True when the rollback delete ran and succeeded."""
        return self.state is SagaState.COMPENSATED_FAILURE and self.compensation_error is None

    @property
    def compensation_error_type(self) -> Optional[ErrorType]:
        """CompensationFailure when the rollback delete itself failed."""
        return ErrorType.COMPENSATION_FAILURE if self.compensation_error else None


@dataclass(frozen=True)
class _PreparedRequest:
    username: str
    password: str
    attributes: Dict[str, str]


class ProvisioningSaga:
    """Orchestrate create → confirm → mirror with compensation on failure.

    Args:
        credentials: Credential store (``create``, ``confirm``, ``delete``)
        profiles: Profile store (``put``)
        audit: Optional audit trail for success/failure/compensation events
        operator: Operator name written to audit events
    """

    def __init__(self, credentials, profiles, audit: Optional[AuditTrail] = None, operator: str = "api"):
        self.credentials = credentials
        self.profiles = profiles
        self.audit = audit
        self.operator = operator
        # Rollback action per step; steps absent here need none
        self._compensations: Dict[Step, Callable[[str], None]] = {
            Step.CONFIRM: self._delete_credential,
            Step.MIRROR: self._delete_credential,
        }

    # ─────────────────────────────────────────────────────────────────────
    # Preconditions
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def check_preconditions(request: ProvisioningRequest) -> _PreparedRequest:
        """Validate the request before any remote call.

        Raises:
            ValidationFailure: On missing fields, names over 20 characters
                or a phone number that is not E.164 shaped
        """
        validators.require_fields(
            username=request.username,
            password=request.password,
            phone_number=request.phone_number,
            given_name=request.given_name,
            family_name=request.family_name,
            id=request.external_ref,
        )
        username = validators.normalize_username(request.username)
        given_name = validators.validate_name(request.given_name, GIVEN_NAME)
        family_name = validators.validate_name(request.family_name, FAMILY_NAME)
        phone_number = validators.normalize_phone_number(request.phone_number)

        return _PreparedRequest(
            username=username,
            password=request.password,
            attributes={
                GIVEN_NAME: given_name,
                FAMILY_NAME: family_name,
                PHONE_NUMBER: phone_number,
                EXTERNAL_REF: request.external_ref,
                CORRELATION_ID: request.correlation_id,
            },
        )

    # ─────────────────────────────────────────────────────────────────────
    # Saga
    # ─────────────────────────────────────────────────────────────────────

    def provision(self, request: ProvisioningRequest) -> ProvisioningResult:
        try:
            prepared = self.check_preconditions(request)
        except ValidationFailure as exc:
            logger.info("[provisioning] Rejected registration for '%s': %s", request.identity, exc)
            return ProvisioningResult(
                state=SagaState.VALIDATION_FAILURE,
                username=request.identity,
                reason=str(exc),
                error_type=ErrorType.VALIDATION_FAILURE,
            )

        username = prepared.username
        attributes = prepared.attributes
        history = [SagaState.PENDING]

        # Step 1: nothing exists yet, so a failure here needs no rollback
        outcome = self._run(Step.CREATE, username, lambda: self.credentials.create(username, prepared.password, attributes))
        if not outcome.ok:
            duplicate = isinstance(outcome.error, UserAlreadyExistsError)
            history.append(SagaState.TERMINAL_FAILURE)
            result = ProvisioningResult(
                state=SagaState.TERMINAL_FAILURE,
                username=username,
                reason=str(outcome.error),
                error_type=ErrorType.DUPLICATE_IDENTITY if duplicate else ErrorType.REMOTE_STORE_FAILURE,
                failed_step=Step.CREATE,
                history=tuple(history),
            )
            self._audit_failure(result, request)
            return result
        history.append(SagaState.CREATED)

        profile_record = dict(attributes)
        remaining = (
            (Step.CONFIRM, lambda: self.credentials.confirm(username), SagaState.CONFIRMED),
            (Step.MIRROR, lambda: self.profiles.put(username, profile_record), SagaState.MIRRORED),
        )
        for step, call, reached in remaining:
            outcome = self._run(step, username, call)
            if not outcome.ok:
                return self._compensate(step, outcome.error, request, username, history)
            history.append(reached)

        history.append(SagaState.SUCCEEDED)
        logger.info(
            "[provisioning] User '%s' registered (external_ref=%s, correlation_id=%s)",
            username, request.external_ref, request.correlation_id,
        )
        if self.audit:
            self.audit.safe_log_event(
                "register",
                username,
                operator=self.operator,
                details={"external_ref": request.external_ref, "correlation_id": request.correlation_id},
                success=True,
            )
        return ProvisioningResult(
            state=SagaState.SUCCEEDED,
            username=username,
            external_ref=request.external_ref,
            history=tuple(history),
        )

    def _run(self, step: Step, username: str, call: Callable[[], Any]) -> StepOutcome:
        """Execute one remote step and turn any failure into a StepOutcome."""
        try:
            call()
        except UserAlreadyExistsError as exc:
            logger.info("[provisioning] Step '%s' rejected for '%s': %s", step.value, username, exc)
            return StepOutcome(ok=False, error=exc)
        except Exception as exc:
            logger.error("[provisioning] Step '%s' failed for '%s': %s", step.value, username, exc, exc_info=True)
            return StepOutcome(ok=False, error=exc)
        logger.debug("[provisioning] Step '%s' done for '%s'", step.value, username)
        return StepOutcome(ok=True)

    def _compensate(
        self,
        failed_step: Step,
        error: Exception,
        request: ProvisioningRequest,
        username: str,
        history: list,
    ) -> ProvisioningResult:
        compensation = self._compensations[failed_step]
        logger.warning("[provisioning] Compensating '%s' after failed step '%s'", username, failed_step.value)

        compensation_error: Optional[str] = None
        try:
            compensation(username)
        except Exception as exc:
            compensation_error = str(exc)
            logger.error(
                "[provisioning] Compensation failed for '%s': credential record left orphaned "
                "(failed_step=%s, correlation_id=%s): %s",
                username, failed_step.value, request.correlation_id, exc,
                exc_info=True,
            )

        if self.audit:
            self.audit.safe_log_event(
                "compensation" if compensation_error is None else "compensation_failure",
                username,
                operator=self.operator,
                details={
                    "failed_step": failed_step.value,
                    "error": str(error),
                    "compensation_error": compensation_error,
                    "error_type": ErrorType.COMPENSATION_FAILURE.value if compensation_error else None,
                    "correlation_id": request.correlation_id,
                    "external_ref": request.external_ref,
                },
                success=compensation_error is None,
            )

        history.append(SagaState.COMPENSATED_FAILURE)
        result = ProvisioningResult(
            state=SagaState.COMPENSATED_FAILURE,
            username=username,
            reason=str(error),
            error_type=ErrorType.REMOTE_STORE_FAILURE,
            failed_step=failed_step,
            compensation_error=compensation_error,
            history=tuple(history),
        )
        self._audit_failure(result, request)
        return result

    def _delete_credential(self, username: str) -> None:
        self.credentials.delete(username)

    def _audit_failure(self, result: ProvisioningResult, request: ProvisioningRequest) -> None:
        if not self.audit:
            return
        self.audit.safe_log_event(
            "register_failed",
            result.username,
            operator=self.operator,
            details={
                "failed_step": result.failed_step.value if result.failed_step else None,
                "error_type": result.error_type.value if result.error_type else None,
                "error": result.reason,
                "correlation_id": request.correlation_id,
            },
            success=False,
        )

