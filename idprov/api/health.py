"""Liveness and readiness probes (no store calls)."""
from flask import Blueprint, current_app

from idprov.api.services import EXTENSION_KEY

bp = Blueprint("health", __name__)

_TEXT = {"Content-Type": "text/plain"}


@bp.route("/health")
def health_check():
    return ("ok", 200, _TEXT)


@bp.route("/ready")
def readiness_check():
    """Ready once the store clients are wired; stores themselves are not probed."""
    if EXTENSION_KEY not in current_app.extensions:
        return ("store clients not initialised", 503, _TEXT)
    return ("ready", 200, _TEXT)
