"""Flask application factory and bootstrap.

This module provides the create_app() factory function for initializing
the Flask application with all blueprints, middleware, and configuration.

Gunicorn entry point: ``userbridge.flask_app:create_app()``.
"""
from __future__ import annotations
import ipaddress
import logging
from typing import Optional

from flask import Flask, request, abort
from werkzeug.middleware.proxy_fix import ProxyFix

from userbridge.config import AppConfig, load_settings
from userbridge.store import Database

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    cfg: Optional[AppConfig] = None,
    *,
    database: Optional[Database] = None,
    admin_client_factory=None,
    login_client_factory=None,
) -> Flask:
    """Create and configure Flask application.

    Args:
        cfg: Settings (loaded from the environment when omitted)
        database: Local store (built from ``cfg.database_url`` when omitted)
        admin_client_factory: Builds an authenticated admin KeycloakClient
        login_client_factory: Builds the unauthenticated client used for password grants
    """
    from userbridge.api.services import EXTENSION_KEY, build_services

    cfg = cfg or load_settings()

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key
    app.config["DEMO_MODE"] = cfg.demo_mode

    svc = build_services(cfg, database, admin_client_factory, login_client_factory)
    svc.database.create_all()
    app.extensions[EXTENSION_KEY] = svc

    # Trust X-Forwarded-* headers from proxy (nginx)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)  # type: ignore

    trusted_proxy_networks = []
    for entry in cfg.trusted_proxy_ips.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            trusted_proxy_networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning("[flask_app] Ignoring invalid TRUSTED_PROXY_IPS entry %r", entry)
    app.config["TRUSTED_PROXY_NETWORKS"] = trusted_proxy_networks

    # Register blueprints
    from userbridge.api import auth, errors, health, roles, users

    app.register_blueprint(auth.bp)
    app.register_blueprint(users.bp)
    app.register_blueprint(roles.bp)
    app.register_blueprint(health.bp)

    errors.register_error_handlers(app)
    _register_middleware(app, trusted_proxy_networks)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    logger.info("[flask_app] Mode=%s; realm=%s; store=%s", mode_label, cfg.keycloak_realm,
                svc.database.engine.url.render_as_string(hide_password=True))
    if cfg.demo_mode:
        logger.warning("[flask_app] Demo mode active - do not deploy with demo credentials")

    return app


def _register_middleware(app: Flask, trusted_proxy_networks: list):
    """Register before_request middleware."""

    @app.before_request
    def enforce_proxy_headers() -> None:
        """Accept proxy headers from trusted sources only."""
        original_remote = request.environ.get("werkzeug.proxy_fix.orig_remote_addr")
        forwarded = request.headers.get("X-Forwarded-For")
        if original_remote and forwarded:
            try:
                address = ipaddress.ip_address(original_remote)
            except ValueError:
                abort(400, description="Invalid proxy address")
            if not any(address in network for network in trusted_proxy_networks):
                abort(400, description="Untrusted proxy")

        if forwarded and "," in forwarded:
            abort(400, description="Multiple forwarded clients not permitted")
