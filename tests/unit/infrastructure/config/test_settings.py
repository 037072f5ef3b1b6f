import pytest

from apirelay.domain.exceptions import ConfigurationError
from apirelay.infrastructure.config import settings
from apirelay.infrastructure.config.settings import (
    get_api_base_url,
    get_auth_settings,
    get_config,
    get_contract_seeds,
    get_rate_limit_settings,
    get_retry_settings,
    load_configuration,
    set_config_for_testing,
)

YAML = """
api:
  base_url: https://api.example.com/v1
rate_limit:
  scope: operation
  max_calls_per_window: 3
  window_duration_ms: 1000
  scopes:
    bulkExport: {max_calls_per_window: 1}
contracts:
  getProducts:
    path: /products
    required: [category]
    defaults: {page_size: 20}
    versions:
      v2: {required: [category, region]}
"""


@pytest.fixture
def yaml_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)  # no stray .env from the working tree
    config_file = tmp_path / "config.yaml"
    config_file.write_text(YAML)
    load_configuration(config_file=config_file, reload=True)
    yield config_file
    settings._config.clear()


def test_nested_keys_resolve_with_dots(yaml_config):
    assert get_config("api.base_url") == "https://api.example.com/v1"
    assert get_config("rate_limit.scope") == "operation"
    assert get_config("does.not.exist", "fallback") == "fallback"


def test_environment_overrides_yaml(yaml_config, monkeypatch):
    monkeypatch.setenv("APIRELAY_RATE_LIMIT_MAX_CALLS_PER_WINDOW", "9")
    monkeypatch.setenv("APIRELAY_API_BASE_URL", "https://staging.example.com")

    assert get_config("rate_limit.max_calls_per_window") == 9
    assert get_api_base_url() == "https://staging.example.com"


def test_test_config_has_highest_priority(yaml_config, monkeypatch):
    monkeypatch.setenv("APIRELAY_API_BASE_URL", "https://staging.example.com")
    set_config_for_testing({"api.base_url": "http://testserver"})

    assert get_api_base_url() == "http://testserver"


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("APIRELAY_AUTH_TOKEN", raising=False)
    (tmp_path / ".env").write_text("APIRELAY_AUTH_TOKEN=from-dotenv\n")

    load_configuration(config_file=tmp_path / "missing.yaml", reload=True)

    assert get_config("auth.token") == "from-dotenv"
    monkeypatch.delenv("APIRELAY_AUTH_TOKEN")


def test_contract_seeds_include_versions(yaml_config):
    seeds = {(c.operation_name, c.version): c for c in get_contract_seeds()}

    base = seeds[("getProducts", None)]
    assert base.required_parameters == {"category"}
    assert base.parameter_defaults == {"page_size": 20}
    assert base.resolved_path == "/products"
    v2 = seeds[("getProducts", "v2")]
    assert v2.required_parameters == {"category", "region"}
    assert v2.resolved_path == "/products"


def test_rate_limit_settings(yaml_config):
    rate = get_rate_limit_settings()

    assert rate["scope"] == "operation"
    assert rate["default"] == {"max_calls_per_window": 3, "window_duration_ms": 1000}
    assert rate["scopes"]["bulkExport"] == {"max_calls_per_window": 1, "window_duration_ms": 1000}


def test_invalid_rate_limit_rejected():
    set_config_for_testing({"rate_limit": {"max_calls_per_window": 0}})
    with pytest.raises(ConfigurationError, match="must be positive"):
        get_rate_limit_settings()


def test_malformed_contracts_rejected():
    set_config_for_testing({"contracts": {"getProducts": {"required": "category"}}})
    with pytest.raises(ConfigurationError, match="must be a list"):
        get_contract_seeds()


def test_missing_base_url_rejected(monkeypatch):
    monkeypatch.delenv("APIRELAY_API_BASE_URL", raising=False)
    monkeypatch.setattr(settings, "_config", {})
    with pytest.raises(ConfigurationError, match="api.base_url"):
        get_api_base_url()


def test_static_auth_settings():
    set_config_for_testing({"auth": {"mode": "static", "token": "k"}})
    auth = get_auth_settings()
    assert auth["mode"] == "static"
    assert auth["token"] == "k"
    assert auth["token_type"] == "Bearer"


def test_token_endpoint_auth_requires_secret(monkeypatch):
    monkeypatch.delenv("APIRELAY_AUTH_CLIENT_SECRET", raising=False)
    set_config_for_testing({"auth": {"mode": "token_endpoint", "token_url": "https://a/t", "client_id": "c"}})
    with pytest.raises(ConfigurationError, match="client_secret"):
        get_auth_settings()


def test_unknown_auth_mode_rejected():
    set_config_for_testing({"auth": {"mode": "kerberos"}})
    with pytest.raises(ConfigurationError, match="Unknown auth.mode"):
        get_auth_settings()


def test_malformed_yaml_raises(tmp_path):
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("api: [unclosed")
    with pytest.raises(ConfigurationError):
        load_configuration(config_file=config_file, reload=True)


def test_non_numeric_auth_timeout_rejected():
    set_config_for_testing({"auth": {"mode": "static", "token": "abc", "refresh_timeout_seconds": "soon"}})
    with pytest.raises(ConfigurationError, match="auth.refresh_timeout_seconds"):
        get_auth_settings()


def test_retry_settings_defaults_and_validation():
    assert get_retry_settings() == {
        "max_auth_retries": 1,
        "max_retries": 3,
        "initial_backoff_seconds": 1.0,
        "backoff_factor": 2.0,
    }
    set_config_for_testing({"retry": {"backoff_factor": "fast"}})
    with pytest.raises(ConfigurationError, match="retry.backoff_factor"):
        get_retry_settings()
    set_config_for_testing({"retry": {"backoff_factor": 2}, "auth": {"max_retries": -1}})
    with pytest.raises(ConfigurationError, match="auth.max_retries"):
        get_retry_settings()
