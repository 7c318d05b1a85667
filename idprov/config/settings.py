"""Settings loader with environment variable and Docker secrets integration."""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEMO_SERVICE_SECRET = "demo-service-secret"
DEMO_AUDIT_SIGNING_KEY = "demo-audit-signing-key-change-in-production"


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


def _load_secret_from_file(secret_name: str, env_var: str | None = None) -> str | None:
    """
    Load secret from /run/secrets (Docker secrets pattern).

    Priority:
    1. /run/secrets/{secret_name} (Docker secrets mount)
    2. Environment variable (fallback)

    Args:
        secret_name: Name of the secret file in /run/secrets
        env_var: Optional environment variable name to check as fallback

    Returns:
        Secret value or None if not found
    """
    secret_file = Path("/run/secrets") / secret_name

    if secret_file.exists() and secret_file.is_file():
        try:
            secret_value = secret_file.read_text().strip()
            if secret_value:
                logger.info("[settings] Loaded %s from /run/secrets", secret_name)
                return secret_value
        except OSError as e:
            logger.warning("[settings] Failed to read /run/secrets/%s: %s", secret_name, e)

    if env_var:
        secret_value = os.getenv(env_var)
        if secret_value:
            return secret_value

    return None


@dataclass
class AppConfig:
    """Application configuration container."""
    # Mode
    demo_mode: bool

    # Keycloak (credential store)
    keycloak_url: str = ""
    keycloak_realm: str = "demo"
    keycloak_service_realm: str = "demo"
    keycloak_issuer: str = ""
    keycloak_server_url: str = ""

    # Service account (Admin API)
    keycloak_service_client_id: str = "automation-cli"
    keycloak_service_client_secret: str = ""

    # Login client (password grant)
    oidc_client_id: str = "user-app"
    oidc_client_secret: str = ""

    # DynamoDB (profile store)
    profile_table_name: str = "ProfilesTable"
    aws_region: str = "us-east-2"
    dynamodb_endpoint_url: str = ""

    # Bearer tokens
    token_verify_signature: bool = False
    token_username_claims: list[str] = field(default_factory=lambda: ["username", "preferred_username"])

    # Audit
    audit_log_dir: str = ".runtime/audit"
    audit_log_signing_key: str = ""

    # Logging
    log_level: str = "INFO"

    @property
    def service_client_secret_resolved(self) -> str:
        """Keycloak service account client secret.

        ``load_settings`` has already read /run/secrets and the environment
        into ``keycloak_service_client_secret``; demo mode overrides it.

        Raises:
            ValueError: If secret not found in production mode
        """
        if self.demo_mode:
            return DEMO_SERVICE_SECRET

        if self.keycloak_service_client_secret:
            return self.keycloak_service_client_secret

        raise ValueError(
            "KEYCLOAK_SERVICE_CLIENT_SECRET not found. "
            "Set DEMO_MODE=true or provide secret via Docker secrets or environment variable."
        )


def _get_or_generate(var_name: str, demo_default: Optional[str] = None, required: bool = True, demo_mode: bool = False) -> str:
    """Get environment variable or fall back to the demo default."""
    value = os.environ.get(var_name)
    if value:
        return value

    if demo_mode and demo_default is not None:
        logger.info("[demo-mode] Using default for %s", var_name)
        return demo_default

    if not required:
        return ""

    raise RuntimeError(f"Environment variable {var_name} is required in production mode.")


def load_settings() -> AppConfig:
    """Load application settings from environment and /run/secrets."""
    demo_mode = _env_flag("DEMO_MODE")

    # Secrets: /run/secrets > environment
    keycloak_service_client_secret = _load_secret_from_file(
        "keycloak_service_client_secret",
        "KEYCLOAK_SERVICE_CLIENT_SECRET",
    ) or ""
    oidc_client_secret = _load_secret_from_file("oidc_client_secret", "OIDC_CLIENT_SECRET") or ""
    audit_log_signing_key = _load_secret_from_file("audit_log_signing_key", "AUDIT_LOG_SIGNING_KEY") or ""
    if not audit_log_signing_key and demo_mode:
        audit_log_signing_key = os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", DEMO_AUDIT_SIGNING_KEY)
        logger.info("[demo-mode] Using demo AUDIT_LOG_SIGNING_KEY")

    # Keycloak URLs
    keycloak_url = _get_or_generate(
        "KEYCLOAK_URL",
        demo_default="http://127.0.0.1:8080",
        demo_mode=demo_mode,
    ).rstrip("/")
    keycloak_realm = os.environ.get("KEYCLOAK_REALM", "demo")
    keycloak_service_realm = os.environ.get("KEYCLOAK_SERVICE_REALM", keycloak_realm)
    keycloak_issuer = os.environ.get("KEYCLOAK_ISSUER", f"{keycloak_url}/realms/{keycloak_realm}")
    keycloak_server_url = os.environ.get("KEYCLOAK_SERVER_URL", keycloak_issuer)

    keycloak_service_client_id = _get_or_generate(
        "KEYCLOAK_SERVICE_CLIENT_ID",
        demo_default="automation-cli",
        demo_mode=demo_mode,
    )
    oidc_client_id = _get_or_generate("OIDC_CLIENT_ID", demo_default="user-app", demo_mode=demo_mode)

    # DynamoDB
    profile_table_name = os.environ.get("PROFILE_TABLE_NAME", "ProfilesTable")
    aws_region = os.environ.get("AWS_REGION", os.environ.get("AWS_DEFAULT_REGION", "us-east-2"))
    dynamodb_endpoint_url = os.environ.get("DYNAMODB_ENDPOINT_URL", "")

    # Tokens
    token_verify_signature = _env_flag("TOKEN_VERIFY_SIGNATURE")
    token_username_claims = [
        claim.strip()
        for claim in os.environ.get("TOKEN_USERNAME_CLAIMS", "username,preferred_username").split(",")
        if claim.strip()
    ] or ["username", "preferred_username"]

    mode_label = "DEMO" if demo_mode else "PRODUCTION"
    logger.info(
        "[settings] Mode=%s; realm=%s; profile_table=%s; verify_signature=%s",
        mode_label, keycloak_realm, profile_table_name, token_verify_signature,
    )
    if demo_mode:
        logger.warning("[settings] Demo credentials in use. Do not deploy with these defaults.")

    return AppConfig(
        demo_mode=demo_mode,
        keycloak_url=keycloak_url,
        keycloak_realm=keycloak_realm,
        keycloak_service_realm=keycloak_service_realm,
        keycloak_issuer=keycloak_issuer,
        keycloak_server_url=keycloak_server_url,
        keycloak_service_client_id=keycloak_service_client_id,
        keycloak_service_client_secret=keycloak_service_client_secret,
        oidc_client_id=oidc_client_id,
        oidc_client_secret=oidc_client_secret,
        profile_table_name=profile_table_name,
        aws_region=aws_region,
        dynamodb_endpoint_url=dynamodb_endpoint_url,
        token_verify_signature=token_verify_signature,
        token_username_claims=token_username_claims,
        audit_log_dir=os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"),
        audit_log_signing_key=audit_log_signing_key,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
