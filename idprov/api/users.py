"""User endpoints: registration, login, profile read and given-name update.

Architecture:
    /users/* -> idprov.core (saga, sync, guard) -> Keycloak + DynamoDB

Parameters are read from the query string. Authenticated endpoints take the
access token from the ``Authorization`` header.
"""

from __future__ import annotations
import logging

from flask import Blueprint, request, jsonify, g

from idprov.api.decorators import require_access_claim, get_access_claim
from idprov.api.services import get_services
from idprov.core.errors import ErrorType
from idprov.core.keycloak.exceptions import AuthenticationFailedError, KeycloakError
from idprov.core.models import GIVEN_NAME, ProvisioningRequest
from idprov.core.ownership import authorize
from idprov.core.profiles import ProfileStoreError
from idprov.core.provisioning_service import GENERIC_FAILURE_MESSAGE

bp = Blueprint("users", __name__)

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"


def error_response(error: str, message: str, status: int):
    return jsonify({"error": error, "message": message}), status


def _forbidden(message: str):
    return error_response(ErrorType.OWNERSHIP_DENIED.value, message, 403)


@bp.after_request
def add_correlation_id(response):
    """Echo the correlation ID for tracing."""
    correlation_id = getattr(g, "correlation_id", None) or request.headers.get(CORRELATION_HEADER)
    if correlation_id:
        response.headers[CORRELATION_HEADER] = correlation_id
    return response


# ─────────────────────────────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/users/register", methods=["POST"])
def register():
    """Create the credential record and the mirrored profile.

    Returns 201 with the caller's external reference id as body.
    """
    provisioning_request = ProvisioningRequest.from_params(
        request.args,
        correlation_id=request.headers.get(CORRELATION_HEADER),
    )
    g.correlation_id = provisioning_request.correlation_id

    result = get_services().saga().provision(provisioning_request)

    if result.ok:
        return jsonify(result.external_ref), 201

    if result.error_type is ErrorType.VALIDATION_FAILURE:
        return error_response(result.error_type.value, result.reason, 400)
    if result.error_type is ErrorType.DUPLICATE_IDENTITY:
        return error_response(result.error_type.value, f"User '{result.username}' already exists", 409)

    logger.error(
        "Registration failed for '%s' at step %s (state=%s, compensation_error=%s)",
        result.username,
        result.failed_step.value if result.failed_step else None,
        result.state.value,
        result.compensation_error,
    )
    return error_response(ErrorType.REMOTE_STORE_FAILURE.value, GENERIC_FAILURE_MESSAGE, 500)


# ─────────────────────────────────────────────────────────────────────────────
# Login (pass-through password grant)
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/users/login", methods=["POST"])
def login():
    username = (request.args.get("username") or "").strip().lower()
    password = request.args.get("password") or ""
    if not username or not password:
        return error_response(ErrorType.VALIDATION_FAILURE.value, "username and password are required", 400)

    try:
        token = get_services().credentials.authenticate(username, password)
    except AuthenticationFailedError as e:
        logger.info("Login rejected for '%s': %s", username, e)
        return error_response("Unauthorized", "Invalid username or password", 401)
    except KeycloakError as e:
        logger.error("Login failed for '%s': %s", username, e)
        return error_response(ErrorType.REMOTE_STORE_FAILURE.value, "Internal Server Error", 500)

    logger.info("User '%s' signed in", username)
    return jsonify({"accessToken": token.get("access_token", "")}), 200


# ─────────────────────────────────────────────────────────────────────────────
# Profile read
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/users", methods=["GET"])
@require_access_claim
def get_user():
    """Return the caller's own profile record (as a 0/1 element list)."""
    requested = (request.args.get("username") or "").strip()
    if not requested:
        return error_response(ErrorType.VALIDATION_FAILURE.value, "username is required", 400)

    claim = get_access_claim()
    if not authorize(claim.username, requested).allowed:
        return _forbidden("You can only get your user")

    try:
        records = get_services().profiles.query(claim.username.lower())
    except ProfileStoreError as e:
        logger.error("Profile lookup failed for '%s': %s", claim.username, e)
        return error_response(ErrorType.REMOTE_STORE_FAILURE.value, "Internal Server Error", 500)

    return jsonify(records), 200


# ─────────────────────────────────────────────────────────────────────────────
# Given-name update
# ─────────────────────────────────────────────────────────────────────────────

@bp.route("/users/given-name", methods=["PATCH", "PUT"])
@require_access_claim
def update_given_name():
    """Update given_name in Keycloak, then in the profile table.

    The identity comes from the token. If ``username`` is also passed it
    must name the same identity.
    """
    claim = get_access_claim()
    requested = (request.args.get("username") or "").strip()
    if requested and not authorize(claim.username, requested).allowed:
        return _forbidden("You can only update your user")

    result = get_services().attribute_sync().sync(claim.username, GIVEN_NAME, request.args.get(GIVEN_NAME) or "")

    if result.ok:
        return jsonify({"message": "Request successful", "user": result.record}), 200
    if result.error_type is ErrorType.VALIDATION_FAILURE:
        return error_response(result.error_type.value, result.reason, 400)

    logger.error("Given-name update failed for '%s' at %s: %s", result.username, result.failed_step, result.reason)
    return error_response(ErrorType.REMOTE_STORE_FAILURE.value, "Internal Server Error", 500)
