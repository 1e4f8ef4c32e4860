"""
Where: dispatchkit/tests/test_config.py
What: Unit tests for AppConfig defaults and environment parsing.
Why: List settings arrive as comma-separated environment values.
"""

from dispatchkit.config import AppConfig
from dispatchkit.models.route import AuthPolicy


def test_defaults(monkeypatch):
    for name in ("APP_AUTH_POLICY", "APP_CSRF_SECRET", "APP_CSRF_METHODS", "APP_PORT"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig(_env_file=None)

    assert config.APP_PORT == 3030
    assert config.APP_AUTH_POLICY == AuthPolicy.DISABLED
    assert config.APP_ENABLE_CACHING is False
    assert config.APP_REQUEST_ID_HEADER == "x-request-id"
    assert config.APP_CSRF_SECRET == []
    assert config.APP_CSRF_METHODS == ["POST", "PUT", "DELETE", "PATCH"]
    assert config.APP_CSRF_LIFETIME == 30 * 24 * 60 * 60
    assert config.LOG_CONFIG_PATH == ""


def test_csv_lists_from_env(monkeypatch):
    monkeypatch.setenv("APP_CSRF_SECRET", "new-secret, old-secret")
    monkeypatch.setenv("APP_CSRF_METHODS", "post,patch")

    config = AppConfig(_env_file=None)

    assert config.APP_CSRF_SECRET == ["new-secret", "old-secret"]
    assert config.APP_CSRF_METHODS == ["POST", "PATCH"]


def test_typed_values_from_env(monkeypatch):
    monkeypatch.setenv("APP_AUTH_POLICY", "required")
    monkeypatch.setenv("APP_PORT", "8080")
    monkeypatch.setenv("APP_ENABLE_CACHING", "true")
    monkeypatch.setenv("APP_SOCKET", "/tmp/app.sock")

    config = AppConfig(_env_file=None)

    assert config.APP_AUTH_POLICY == AuthPolicy.REQUIRED
    assert config.APP_PORT == 8080
    assert config.APP_ENABLE_CACHING is True
    assert config.APP_SOCKET == "/tmp/app.sock"


def test_env_file_is_read(monkeypatch, tmp_path):
    monkeypatch.delenv("APP_NAME", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("APP_NAME=from-file\nAPP_CSRF_SECRET=a,b\n", encoding="utf-8")

    config = AppConfig(_env_file=str(env_file))

    assert config.APP_NAME == "from-file"
    assert config.APP_CSRF_SECRET == ["a", "b"]


def test_init_values_win_over_env(monkeypatch):
    monkeypatch.setenv("APP_NAME", "from-env")

    assert AppConfig(_env_file=None, APP_NAME="explicit").APP_NAME == "explicit"
