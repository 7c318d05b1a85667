"""JSON error handlers: every error leaves as ``{"error", "message"}``."""
import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from idprov.core.errors import ErrorType
from idprov.core.keycloak.exceptions import KeycloakError
from idprov.core.profiles import ProfileStoreError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register error handlers with the Flask app."""

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # 404, 405 and aborts raised by Flask itself
        return jsonify({"error": error.name, "message": error.description}), error.code

    @app.errorhandler(KeycloakError)
    @app.errorhandler(ProfileStoreError)
    def handle_store_error(error):
        logger.error("Store call escaped %s %s: %s", request.method, request.path, error, exc_info=True)
        return jsonify({"error": ErrorType.REMOTE_STORE_FAILURE.value, "message": "Internal Server Error"}), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        logger.error("Unhandled exception on %s %s", request.method, request.path, exc_info=True)
        return jsonify({"error": "Internal Server Error", "message": "An unexpected error occurred"}), 500
