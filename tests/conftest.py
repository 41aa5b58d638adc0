"""Pytest shared fixtures: network guard, in-memory Keycloak, app factory, JWT helpers."""
import json
import os
import pathlib
import sys
import time
import uuid
from collections import defaultdict
from typing import Optional
from unittest.mock import MagicMock
from urllib.parse import urlparse

# Add project root to Python path
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Configure test environment BEFORE any app imports
os.environ.setdefault("DEMO_MODE", "true")
os.environ.setdefault("AUDIT_LOG_SIGNING_KEY", "test-signing-key-for-audit-trail")

import pytest
import requests
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives import serialization
from authlib.jose import jwt as authlib_jwt

from userbridge.config.settings import AppConfig
from userbridge.core import audit
from userbridge.flask_app import create_app
from userbridge.store import Database, LocalUserService

KC_URL = "http://kc.test"
REALM = "demo"
ISSUER = f"{KC_URL}/realms/{REALM}"
ADMIN_TOKEN = "admin-token"


# ─────────────────────────────────────────────────────────────────────────────
# Network Guard Rails
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
def _block_network(monkeypatch, request):
    """
    Prevent unit tests from hitting live endpoints.

    Integration tests are explicitly marked with @pytest.mark.integration and
    are allowed to perform real HTTP calls by skipping this fixture.
    """
    if request.node.get_closest_marker("integration"):
        return

    def _forbid(method):
        def _stub(url, *args, **kwargs):
            raise RuntimeError(f"Unexpected HTTP {method} in unit test: {url}")
        return _stub

    for method in ("get", "post", "put", "delete"):
        monkeypatch.setattr(requests, method, _forbid(method.upper()))


@pytest.fixture(autouse=True)
def audit_file(monkeypatch, tmp_path):
    """Isolated audit trail for every test."""
    audit_dir = tmp_path / "audit"
    audit_path = audit_dir / "userbridge-events.jsonl"
    monkeypatch.setattr(audit, "AUDIT_LOG_DIR", audit_dir)
    monkeypatch.setattr(audit, "AUDIT_LOG_FILE", audit_path)
    return audit_path


# ─────────────────────────────────────────────────────────────────────────────
# In-memory Keycloak
# ─────────────────────────────────────────────────────────────────────────────
class StubResponse:
    def __init__(self, status_code: int = 200, payload=None, url: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.url = url
        self.text = json.dumps(payload) if payload is not None else ""

    def json(self):
        return self._payload


class FakeKeycloak:
    """Just enough of the Keycloak token endpoint and Admin API for the workflows.

    Installed by patching ``requests.get/post/put/delete``. Every call is
    recorded in ``calls``; ``fail(method, fragment, status)`` makes matching
    calls answer with an error status, ``unreachable = True`` raises
    ``requests.ConnectionError`` for everything.
    """

    ACCOUNT_CLIENT_UUID = "account-uuid"

    def __init__(self, base_url: str = KC_URL, realm: str = REALM):
        self.base_url = base_url
        self.realm = realm
        self.admin_username = "admin"
        self.admin_password = "admin"
        self.users: dict[str, dict] = {}
        self.passwords: dict[str, str] = {}
        self.realm_roles: dict[str, dict] = {}
        self.client_roles: dict[str, dict] = {}
        self.groups: dict[str, dict] = {}
        self.realm_mappings = defaultdict(list)
        self.client_mappings = defaultdict(list)
        self.memberships = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self.failures: list[tuple[str, str, int, str]] = []
        self.unreachable = False
        for name in ("user", "admin", "manager", "offline_access"):
            self.add_realm_role(name)
        for name in ("manage-account", "delete-account", "view-profile"):
            self.client_roles[name] = {"id": f"client-role-{name}", "name": name, "clientRole": True}

    # Setup helpers
    def add_realm_role(self, name: str, description: str = "") -> dict:
        role = {"id": f"role-{name}", "name": name, "description": description}
        self.realm_roles[name] = role
        return role

    def add_user(self, username: str, password: str = "secret1", email: Optional[str] = None) -> str:
        user_id = str(uuid.uuid4())
        self.users[user_id] = {"id": user_id, "username": username.lower(), "email": email or f"{username}@x.com"}
        self.passwords[username.lower()] = password
        return user_id

    def fail(self, method: str, fragment: str, status: int, body: str = "") -> None:
        self.failures.append((method.upper(), fragment, status, body or json.dumps({"error": "injected"})))

    def install(self, monkeypatch) -> "FakeKeycloak":
        for method in ("get", "post", "put", "delete"):
            monkeypatch.setattr(requests, method, self._sender(method.upper()))
        return self

    def calls_to(self, fragment: str, method: Optional[str] = None) -> list[tuple[str, str]]:
        return [c for c in self.calls if fragment in c[1] and (method is None or c[0] == method)]

    # Dispatch
    def _sender(self, method):
        def _send(url, params=None, json=None, data=None, headers=None, timeout=None, **kwargs):
            return self.handle(method, url, params or {}, json, data or {}, headers or {})
        return _send

    def handle(self, method, url, params, body, form, headers):
        self.calls.append((method, url))
        if self.unreachable:
            raise requests.ConnectionError(f"connection refused: {url}")
        path = urlparse(url).path
        for f_method, fragment, status, fbody in self.failures:
            if f_method == method and fragment in path:
                resp = StubResponse(status, None, url)
                resp.text = fbody
                return resp

        if path.endswith("/protocol/openid-connect/token"):
            return self._token(url, form)

        if headers.get("Authorization") != f"Bearer {ADMIN_TOKEN}":
            return StubResponse(401, {"error": "HTTP 401 Unauthorized"}, url)

        prefix = f"/admin/realms/{self.realm}/"
        if not path.startswith(prefix):
            return StubResponse(404, {"error": "Realm not found."}, url)
        parts = path[len(prefix):].strip("/").split("/")
        return self._admin(method, parts, params, body, url)

    def _token(self, url, form):
        username = (form.get("username") or "").lower()
        password = form.get("password")
        if form.get("client_id") == "admin-cli":
            if username == self.admin_username and password == self.admin_password:
                return StubResponse(200, {"access_token": ADMIN_TOKEN, "expires_in": 60}, url)
            return StubResponse(401, {"error": "invalid_grant"}, url)
        if username in self.passwords and self.passwords[username] == password:
            return StubResponse(200, {
                "access_token": f"access-{username}",
                "expires_in": 300,
                "refresh_expires_in": 1800,
                "refresh_token": f"refresh-{username}",
                "token_type": "Bearer",
                "not-before-policy": 0,
                "session_state": "state-1",
                "scope": form.get("scope", ""),
            }, url)
        return StubResponse(401, {"error": "invalid_grant", "error_description": "Invalid user credentials"}, url)

    def _admin(self, method, parts, params, body, url):
        head = parts[0]
        if head == "users":
            return self._users(method, parts[1:], params, body, url)
        if head == "roles":
            if method == "POST":
                if body["name"] in self.realm_roles:
                    return StubResponse(409, {"errorMessage": f"Role with name {body['name']} already exists"}, url)
                self.add_realm_role(body["name"], body.get("description", ""))
                return StubResponse(201, None, url)
            role = self.realm_roles.get(parts[1]) if len(parts) > 1 else None
            if role is None:
                return StubResponse(404, {"error": "Could not find role"}, url)
            return StubResponse(200, role, url)
        if head == "clients":
            if len(parts) == 1:
                wanted = params.get("clientId")
                found = [{"id": self.ACCOUNT_CLIENT_UUID, "clientId": "account"}] if wanted == "account" else []
                return StubResponse(200, found, url)
            return StubResponse(200, list(self.client_roles.values()), url)
        if head == "groups":
            if method == "POST":
                name = body["name"]
                self.groups[name] = {"id": f"group-{name}", "name": name, "path": f"/{name}"}
                return StubResponse(201, None, url)
            search = params.get("search", "")
            return StubResponse(200, [g for g in self.groups.values() if search in g["name"]], url)
        return StubResponse(404, {"error": "unknown resource"}, url)

    def _users(self, method, parts, params, body, url):
        if not parts:
            if method == "POST":
                for user in self.users.values():
                    if user["username"] == body["username"].lower():
                        return StubResponse(409, {"errorMessage": "User exists with same username"}, url)
                    if user["email"] == body.get("email"):
                        return StubResponse(409, {"errorMessage": "User exists with same email"}, url)
                self.add_user(body["username"], body["credentials"][0]["value"], body.get("email"))
                return StubResponse(201, None, url)
            wanted = (params.get("username") or "").lower()
            return StubResponse(200, [u for u in self.users.values() if u["username"] == wanted], url)

        user_id = parts[0]
        if user_id not in self.users:
            return StubResponse(404, {"error": "User not found"}, url)
        rest = parts[1:]
        if rest[:2] == ["role-mappings", "realm"]:
            if method == "POST":
                self.realm_mappings[user_id].extend(r["name"] for r in body)
                return StubResponse(204, None, url)
            if method == "DELETE":
                removed = {r["name"] for r in body}
                self.realm_mappings[user_id] = [r for r in self.realm_mappings[user_id] if r not in removed]
                return StubResponse(204, None, url)
            return StubResponse(200, [self.realm_roles[n] for n in self.realm_mappings[user_id]], url)
        if rest[:2] == ["role-mappings", "clients"]:
            if method == "POST":
                self.client_mappings[user_id].extend(r["name"] for r in body)
                return StubResponse(204, None, url)
            return StubResponse(200, [self.client_roles[n] for n in self.client_mappings[user_id]], url)
        if rest and rest[0] == "groups":
            if method == "PUT":
                group = next(g for g in self.groups.values() if g["id"] == rest[1])
                self.memberships[user_id].append(group["name"])
                return StubResponse(204, None, url)
            return StubResponse(200, [self.groups[n] for n in self.memberships[user_id]], url)
        return StubResponse(404, {"error": "unknown resource"}, url)


@pytest.fixture()
def fake_keycloak(monkeypatch):
    return FakeKeycloak().install(monkeypatch)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration, store and Flask app
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture()
def app_config():
    return AppConfig(
        demo_mode=True,
        secret_key="test-secret",
        keycloak_url=KC_URL,
        keycloak_realm=REALM,
        keycloak_issuer=ISSUER,
        keycloak_client_id="userbridge",
        keycloak_client_secret="client-secret",
        database_url="sqlite://",
    )


@pytest.fixture()
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.engine.dispose()


@pytest.fixture()
def local_users(database):
    return LocalUserService(database)


@pytest.fixture()
def flask_app(app_config, database):
    flask_app = create_app(app_config, database=database)
    flask_app.config.update(TESTING=True)
    return flask_app


@pytest.fixture()
def client(flask_app):
    """Flask test client."""
    with flask_app.test_client() as client:
        with flask_app.app_context():
            yield client


# ─────────────────────────────────────────────────────────────────────────────
# RSA Key Pair and JWT helpers
# ─────────────────────────────────────────────────────────────────────────────
@pytest.fixture(scope="session")
def rsa_key_pair():
    """Generate RSA key pair for JWT signing in tests."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_key = private_key.public_key()
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return {"private_key": private_key, "public_key": public_key, "public_pem": public_pem}


@pytest.fixture()
def jwks_stub(monkeypatch, rsa_key_pair):
    """Serve the test public key in place of the realm JWKS endpoint."""
    from userbridge.api import decorators

    signing_key = MagicMock()
    signing_key.key = rsa_key_pair["public_key"]
    jwks_client = MagicMock()
    jwks_client.get_signing_key_from_jwt.return_value = signing_key
    monkeypatch.setattr(decorators, "get_jwks_client", lambda: jwks_client)
    return jwks_client


def create_valid_jwt(
    rsa_key_pair: dict,
    issuer: str = ISSUER,
    username: str = "alice",
    roles: Optional[list[str]] = None,
    exp_offset: int = 3600,
    kid: str = "test-key",
) -> str:
    """Create an RS256-signed access token shaped like Keycloak's."""
    if roles is None:
        roles = ["user", "offline_access", f"default-roles-{REALM}"]

    now = int(time.time())
    header = {"alg": "RS256", "typ": "JWT", "kid": kid}
    payload = {
        "iss": issuer,
        "aud": "account",
        "sub": f"sub-{username}",
        "exp": now + exp_offset,
        "iat": now,
        "preferred_username": username,
        "realm_access": {"roles": roles},
    }
    token = authlib_jwt.encode(header, payload, rsa_key_pair["private_key"])
    return token.decode("utf-8") if isinstance(token, bytes) else token


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires running stack)"
    )
