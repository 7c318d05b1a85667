"""Unit tests for the account creation saga (create -> confirm -> mirror)."""
import json

import pytest

from idprov.core.errors import ErrorType
from idprov.core.keycloak.exceptions import KeycloakAPIError
from idprov.core.models import ProvisioningRequest
from idprov.core.profiles import ProfileStoreError
from idprov.core.provisioning_service import (
    GENERIC_FAILURE_MESSAGE,
    ProvisioningSaga,
    SagaState,
    Step,
)


def _request(**overrides) -> ProvisioningRequest:
    params = dict(
        username="Bob",
        password="Passw0rd!",
        phone_number="41791234567",
        given_name="Bob",
        family_name="Builder",
        external_ref="ext-42",
        correlation_id="corr-1",
    )
    params.update(overrides)
    return ProvisioningRequest(**params)


def _events(audit):
    if not audit.log_file.exists():
        return []
    return [json.loads(line) for line in audit.log_file.read_text().splitlines() if line.strip()]


@pytest.fixture
def saga(credentials, profiles, audit):
    return ProvisioningSaga(credentials, profiles, audit=audit)


def test_successful_registration_creates_confirmed_credential_and_profile(saga, credentials, profiles):
    result = saga.provision(_request())

    assert result.ok
    assert result.state is SagaState.SUCCEEDED
    assert result.external_ref == "ext-42"
    assert result.username == "bob"
    assert result.history == (
        SagaState.PENDING,
        SagaState.CREATED,
        SagaState.CONFIRMED,
        SagaState.MIRRORED,
        SagaState.SUCCEEDED,
    )

    record = credentials.records["bob"]
    assert record.confirmed is True
    assert record.attributes["phone_number"] == "+41791234567"

    profile = profiles.items["bob"]
    assert profile["given_name"] == "Bob"
    assert profile["family_name"] == "Builder"
    assert profile["phone_number"] == "+41791234567"
    assert profile["external_ref"] == "ext-42"
    assert "password" not in profile


def test_steps_run_in_order(saga, credentials, profiles):
    saga.provision(_request())

    assert credentials.calls == [("create", "bob"), ("confirm", "bob")]
    assert profiles.calls == [("put", "bob")]


def test_successful_registration_is_audited(saga, audit):
    saga.provision(_request())

    events = _events(audit)
    assert [e["event_type"] for e in events] == ["register"]
    assert events[0]["details"]["external_ref"] == "ext-42"
    assert events[0]["details"]["correlation_id"] == "corr-1"


def test_name_over_twenty_characters_makes_no_remote_call(saga, credentials, profiles):
    result = saga.provision(_request(given_name="A" * 21))

    assert result.state is SagaState.VALIDATION_FAILURE
    assert result.error_type is ErrorType.VALIDATION_FAILURE
    assert "given_name" in result.reason
    assert credentials.calls == []
    assert profiles.calls == []


def test_name_of_exactly_twenty_characters_is_accepted(saga):
    assert saga.provision(_request(family_name="B" * 20)).ok


def test_missing_field_is_rejected(saga, credentials):
    result = saga.provision(_request(external_ref=""))

    assert result.state is SagaState.VALIDATION_FAILURE
    assert "please specify all fields" in result.reason
    assert credentials.calls == []


@pytest.mark.parametrize("phone", ["1234567890123456", "12-34", "abc", "١٥٥٥١٢٣٤٥٦٧", "４１７９１２３"])
def test_invalid_phone_number_is_rejected(saga, credentials, phone):
    result = saga.provision(_request(phone_number=phone))

    assert result.error_type is ErrorType.VALIDATION_FAILURE
    assert result.reason == "no valid phone number"
    assert credentials.calls == []


def test_eleven_digit_phone_number_is_prefixed(saga, profiles):
    assert saga.provision(_request(phone_number="12345678901")).ok
    assert profiles.items["bob"]["phone_number"] == "+12345678901"


def test_duplicate_identity_is_terminal_without_compensation(saga, credentials, audit):
    assert saga.provision(_request()).ok
    credentials.calls.clear()

    result = saga.provision(_request(username="BOB"))

    assert result.state is SagaState.TERMINAL_FAILURE
    assert result.error_type is ErrorType.DUPLICATE_IDENTITY
    assert result.failed_step is Step.CREATE
    assert credentials.calls == [("create", "bob")]
    assert _events(audit)[-1]["event_type"] == "register_failed"


def test_create_failure_needs_no_compensation(saga, credentials, profiles):
    credentials.fail_on["create"] = KeycloakAPIError(503, "unavailable", "/admin/realms/demo/users")

    result = saga.provision(_request())

    assert result.state is SagaState.TERMINAL_FAILURE
    assert result.error_type is ErrorType.REMOTE_STORE_FAILURE
    assert ("delete", "bob") not in credentials.calls
    assert profiles.calls == []


def test_confirm_failure_deletes_created_credential(saga, credentials, profiles, audit):
    credentials.fail_on["confirm"] = KeycloakAPIError(500, "boom", "/admin/realms/demo/users/id-bob")

    result = saga.provision(_request())

    assert result.state is SagaState.COMPENSATED_FAILURE
    assert result.failed_step is Step.CONFIRM
    assert result.compensated
    assert credentials.calls == [("create", "bob"), ("confirm", "bob"), ("delete", "bob")]
    assert "bob" not in credentials.records
    assert profiles.calls == []
    assert [e["event_type"] for e in _events(audit)] == ["compensation", "register_failed"]


def test_mirror_failure_deletes_confirmed_credential(saga, credentials, profiles):
    profiles.fail_on["put"] = ProfileStoreError("throttled")

    result = saga.provision(_request())

    assert result.state is SagaState.COMPENSATED_FAILURE
    assert result.failed_step is Step.MIRROR
    assert result.error_type is ErrorType.REMOTE_STORE_FAILURE
    assert result.history[-2:] == (SagaState.CONFIRMED, SagaState.COMPENSATED_FAILURE)
    assert credentials.calls[-1] == ("delete", "bob")
    assert "bob" not in credentials.records
    assert profiles.items == {}


def test_compensation_failure_is_reported_and_audited(saga, credentials, profiles, audit):
    profiles.fail_on["put"] = ProfileStoreError("throttled")
    credentials.fail_on["delete"] = KeycloakAPIError(503, "unavailable", "/admin/realms/demo/users/id-bob")

    result = saga.provision(_request())

    assert result.state is SagaState.COMPENSATED_FAILURE
    assert not result.compensated
    assert "unavailable" in result.compensation_error
    # Original failure is still what the caller sees
    assert result.reason == "throttled"
    # Delete is attempted exactly once
    assert credentials.calls.count(("delete", "bob")) == 1
    assert "bob" in credentials.records

    events = _events(audit)
    failure = next(e for e in events if e["event_type"] == "compensation_failure")
    assert failure["success"] is False
    assert failure["details"]["failed_step"] == "mirror"
    assert failure["details"]["correlation_id"] == "corr-1"


def test_saga_runs_without_audit_trail(credentials, profiles):
    profiles.fail_on["put"] = ProfileStoreError("throttled")

    result = ProvisioningSaga(credentials, profiles).provision(_request())

    assert result.state is SagaState.COMPENSATED_FAILURE


def test_generic_failure_message_hides_store_details():
    assert "throttled" not in GENERIC_FAILURE_MESSAGE
    assert GENERIC_FAILURE_MESSAGE == "Error during user registration"


def test_compensation_failure_is_categorized(saga, credentials, profiles, audit):
    profiles.fail_on["put"] = ProfileStoreError("throttled")
    credentials.fail_on["delete"] = KeycloakAPIError(503, "unavailable", "/admin/realms/demo/users/id-bob")

    result = saga.provision(_request())

    assert result.error_type is ErrorType.REMOTE_STORE_FAILURE
    assert result.compensation_error_type is ErrorType.COMPENSATION_FAILURE
    failure = next(e for e in _events(audit) if e["event_type"] == "compensation_failure")
    assert failure["details"]["error_type"] == "CompensationFailure"


def test_successful_compensation_has_no_compensation_error_type(saga, profiles):
    profiles.fail_on["put"] = ProfileStoreError("throttled")

    result = saga.provision(_request())

    assert result.compensated
    assert result.compensation_error_type is None


def test_duplicate_identity_is_not_logged_as_error(saga, caplog):
    assert saga.provision(_request()).ok

    with caplog.at_level("DEBUG", logger="idprov.core.provisioning_service"):
        result = saga.provision(_request())

    assert result.error_type is ErrorType.DUPLICATE_IDENTITY
    records = [r for r in caplog.records if r.name == "idprov.core.provisioning_service"]
    assert records
    assert all(r.levelname != "ERROR" for r in records)
    assert all(r.exc_info is None for r in records)


def test_store_failure_is_logged_with_traceback(saga, credentials, caplog):
    credentials.fail_on["create"] = KeycloakAPIError(503, "unavailable", "/admin/realms/demo/users")

    with caplog.at_level("ERROR", logger="idprov.core.provisioning_service"):
        saga.provision(_request())

    assert any(r.levelname == "ERROR" and r.exc_info for r in caplog.records)
