import pytest

from userbridge.config import settings


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    for var in (
        "DEMO_MODE", "FLASK_SECRET_KEY", "TRUSTED_PROXY_IPS", "KEYCLOAK_URL", "KEYCLOAK_REALM",
        "KEYCLOAK_ADMIN_REALM", "KEYCLOAK_ISSUER", "KEYCLOAK_ADMIN", "KEYCLOAK_ADMIN_PASSWORD",
        "KEYCLOAK_CLIENT_ID", "KEYCLOAK_CLIENT_SECRET", "KEYCLOAK_ROLE_CLIENT_ID",
        "KEYCLOAK_REQUEST_TIMEOUT", "KEYCLOAK_TRANSIENT_RETRIES", "DATABASE_URL",
        "AUDIT_LOG_SIGNING_KEY",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(settings, "SECRETS_DIR", tmp_path / "secrets")
    return monkeypatch


def _leave_test_mode(monkeypatch):
    # pytest re-sets this variable at the start of every test phase
    monkeypatch.delenv("PYTEST_CURRENT_TEST", raising=False)


def _production_env(monkeypatch):
    _leave_test_mode(monkeypatch)
    monkeypatch.setenv("FLASK_SECRET_KEY", "secret")
    monkeypatch.setenv("TRUSTED_PROXY_IPS", "10.0.0.0/8")
    monkeypatch.setenv("KEYCLOAK_URL", "https://sso.example.com/")
    monkeypatch.setenv("KEYCLOAK_ADMIN", "root")
    monkeypatch.setenv("KEYCLOAK_ADMIN_PASSWORD", "hunter2")


def test_production_settings_from_environment(clean_env):
    _production_env(clean_env)
    clean_env.setenv("KEYCLOAK_REALM", "pulsar")
    clean_env.setenv("KEYCLOAK_TRANSIENT_RETRIES", "1")
    clean_env.setenv("KEYCLOAK_REQUEST_TIMEOUT", "2.5")

    cfg = settings.load_settings()

    assert cfg.demo_mode is False
    assert cfg.keycloak_url == "https://sso.example.com"
    assert cfg.keycloak_issuer == "https://sso.example.com/realms/pulsar"
    assert cfg.jwks_uri == "https://sso.example.com/realms/pulsar/protocol/openid-connect/certs"
    assert cfg.keycloak_admin_realm == "master"
    assert cfg.keycloak_role_client_id == "account"
    assert cfg.keycloak_transient_retries == 1
    assert cfg.keycloak_request_timeout == 2.5
    assert cfg.database_url.startswith("sqlite")


def test_defaults_keep_single_attempt_and_five_second_timeout(clean_env):
    _production_env(clean_env)
    cfg = settings.load_settings()
    assert cfg.keycloak_transient_retries == 0
    assert cfg.keycloak_request_timeout == 5.0


def test_production_requires_secret_key(clean_env):
    _leave_test_mode(clean_env)
    clean_env.setenv("TRUSTED_PROXY_IPS", "10.0.0.0/8")
    with pytest.raises(RuntimeError, match="FLASK_SECRET_KEY"):
        settings.load_settings()


def test_production_requires_trusted_proxies(clean_env):
    _leave_test_mode(clean_env)
    clean_env.setenv("FLASK_SECRET_KEY", "secret")
    with pytest.raises(RuntimeError, match="TRUSTED_PROXY_IPS"):
        settings.load_settings()


def test_demo_mode_fills_defaults(clean_env):
    clean_env.setenv("DEMO_MODE", "true")
    cfg = settings.load_settings()
    assert cfg.demo_mode is True
    assert cfg.secret_key
    assert cfg.keycloak_url == "http://127.0.0.1:8080"
    assert cfg.keycloak_admin == "admin"
    assert cfg.trusted_proxy_ips == "127.0.0.1/32,::1/128"


def test_invalid_number_is_reported(clean_env):
    _production_env(clean_env)
    clean_env.setenv("KEYCLOAK_TRANSIENT_RETRIES", "many")
    with pytest.raises(RuntimeError, match="KEYCLOAK_TRANSIENT_RETRIES"):
        settings.load_settings()


def test_docker_secret_takes_priority(clean_env, tmp_path):
    _production_env(clean_env)
    secrets_dir = tmp_path / "secrets"
    secrets_dir.mkdir()
    (secrets_dir / "keycloak_admin_password").write_text("from-file\n")
    (secrets_dir / "keycloak_client_secret").write_text("client-from-file")

    cfg = settings.load_settings()

    assert cfg.keycloak_admin_password == "from-file"
    assert cfg.keycloak_client_secret == "client-from-file"
