"""Flask application factory and bootstrap.

This module provides the create_app() factory function that wires the store
clients, blueprints and error handlers together.
"""
from __future__ import annotations
import logging
from typing import Optional

from flask import Flask

from idprov.api.services import Services, init_services
from idprov.config import AppConfig, load_settings
from idprov.logging_config import configure_logging

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Store clients
# ─────────────────────────────────────────────────────────────────────────────
def build_services(cfg: AppConfig) -> Services:
    """Create the store clients once per process.

    No network call happens here: the Keycloak token and the DynamoDB
    connection are both obtained lazily on first use.
    """
    from idprov.api.decorators import JwksTokenVerifier
    from idprov.core.audit import AuditTrail
    from idprov.core.keycloak import CredentialService, KeycloakClient
    from idprov.core.profiles import ProfileService, connect_profile_table
    from idprov.core.tokens import TokenReader

    kc_client = KeycloakClient(cfg.keycloak_url)
    kc_client.configure_service_account(
        cfg.keycloak_service_realm,
        cfg.keycloak_service_client_id,
        cfg.service_client_secret_resolved,
    )
    credentials = CredentialService(
        kc_client,
        cfg.keycloak_realm,
        login_client_id=cfg.oidc_client_id,
        login_client_secret=cfg.oidc_client_secret,
    )

    profiles = ProfileService(
        connect_profile_table(cfg.profile_table_name, cfg.aws_region, cfg.dynamodb_endpoint_url)
    )

    verifier = None
    if cfg.token_verify_signature:
        verifier = JwksTokenVerifier(cfg.keycloak_server_url, cfg.keycloak_issuer)
    else:
        logger.warning("[flask_app] Bearer token signatures are NOT verified (TOKEN_VERIFY_SIGNATURE=false)")
    token_reader = TokenReader(verifier=verifier, claim_names=cfg.token_username_claims)

    audit = AuditTrail(cfg.audit_log_dir, cfg.audit_log_signing_key)
    return Services(credentials=credentials, profiles=profiles, token_reader=token_reader, audit=audit)


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None, services: Optional[Services] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Settings (loaded from the environment when omitted)
        services: Pre-built store clients (built from ``cfg`` when omitted)
    """
    cfg = cfg or load_settings()
    configure_logging(cfg.log_level)

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg

    init_services(app, services or build_services(cfg))

    from idprov.api import errors, health, users

    app.register_blueprint(health.bp)
    app.register_blueprint(users.bp)

    errors.register_error_handlers(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info("[flask_app] Mode=%s; realm=%s; profile_table=%s", mode_label, cfg.keycloak_realm, cfg.profile_table_name)
    if cfg.demo_mode:
        logger.warning("[flask_app] Demo mode active - do not deploy with demo credentials")

    return app
