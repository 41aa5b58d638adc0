"""Gunicorn configuration for userbridge.

Run with:
    gunicorn -c gunicorn.conf.py "userbridge.flask_app:create_app()"

Secrets are read by ``userbridge.config.settings`` from /run/secrets (Docker
secrets) with environment variables as fallback; workers only report what
is mounted.
"""
import os
from pathlib import Path

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "30"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info")


def post_fork(server, worker):
    """Called just after a worker has been forked."""
    secrets_dir = Path("/run/secrets")
    if secrets_dir.is_dir():
        secret_files = [p.name for p in secrets_dir.glob("*") if p.is_file()]
        worker.log.info("Found %d secrets in /run/secrets", len(secret_files))
    else:
        worker.log.info("No /run/secrets mount; settings come from the environment")

    if os.environ.get("DEMO_MODE", "false").lower() == "true":
        worker.log.warning("DEMO_MODE=true - demo credentials may be in use")
