"""Gunicorn configuration for the idprov web application.

Secrets are read by idprov.config.settings from /run/secrets (Docker
secrets) with environment variables as fallback; this file only reports
which source a worker will see.
"""
import os

wsgi_app = "idprov.flask_app:create_app()"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()


def post_fork(server, worker):
    """Called just after a worker has been forked."""
    from pathlib import Path

    secrets_dir = Path("/run/secrets")
    if secrets_dir.exists() and secrets_dir.is_dir():
        secret_files = list(secrets_dir.glob("*"))
        if secret_files:
            worker.log.info(f"Found {len(secret_files)} secrets in /run/secrets")
            return

    if os.environ.get("DEMO_MODE", "false").lower() == "true":
        worker.log.warning("DEMO_MODE=true: demo secrets in use")
    else:
        worker.log.info("No /run/secrets mount, secrets come from the environment")
