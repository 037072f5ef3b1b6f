"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a YAML
configuration file (~/.apirelay/config.yaml by default). Also turns the
raw values into the seed data the request layer consumes: operation
contracts, rate budgets and authentication settings.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from apirelay.domain.exceptions import ConfigurationError
from apirelay.domain.models.common import RateBudgetSettings
from apirelay.domain.models.contract import OperationContract

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".apirelay"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_LEARNED_CONTRACTS_FILE = DEFAULT_CONFIG_DIR / "learned_contracts.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "APIRELAY_"

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0
DEFAULT_RATE_LIMIT: RateBudgetSettings = {"max_calls_per_window": 5, "window_duration_ms": 60_000}
DEFAULT_RATE_LIMIT_SCOPE = "endpoint"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None, reload: bool = False) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables (APIRELAY_ prefix, dots as underscores)
    2. .env file
    3. YAML configuration file
    4. Default values passed to get_config

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
        reload: Re-read files even if configuration was already loaded.
    """
    global _config, _loaded
    if _loaded and not reload:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load or parse YAML config {config_file}: {e}") from e
        if isinstance(yaml_config, dict):
            _config.update(yaml_config)
            logger.info(f"Loaded configuration from YAML: {config_file}")
        elif yaml_config is not None:
            logger.warning(f"YAML config file {config_file} did not contain a mapping.")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    # 3. Environment Variables (Highest priority) are handled in get_config
    _loaded = True
    logger.info("Configuration loading process completed.")


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def env_var_name(key: str) -> str:
    """'auth.client_secret' -> 'APIRELAY_AUTH_CLIENT_SECRET'."""
    return ENV_PREFIX + key.upper().replace(".", "_")


def _coerce_env_value(value: str) -> Any:
    # Try to convert common types
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def _lookup_dotted(source: Dict[str, Any], key: str) -> Any:
    """Finds 'a.b.c' either as a flat key or by walking nested mappings."""
    if key in source:
        return source[key]
    node: Any = source
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            raise KeyError(key)
        node = node[part]
    return node


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by dotted key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable
    3. YAML config
    4. Default value
    """
    try:
        return _lookup_dotted(_test_config, key)
    except KeyError:
        pass

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce_env_value(os.environ[env_key])

    try:
        return _lookup_dotted(_config, key)
    except KeyError:
        logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
        return default


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values for testing purposes.

    These values override any existing configuration.
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {sorted(config_dict)}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


# --- Typed accessors ---

def _positive_int(value: Any, key: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}") from None
    if number <= 0:
        raise ConfigurationError(f"'{key}' must be positive, got {number}")
    return number


def get_api_base_url() -> str:
    url = get_config("api.base_url")
    if not url:
        raise ConfigurationError(f"api.base_url is not configured (set it in YAML or {env_var_name('api.base_url')}).")
    return str(url)


def _number(key: str, default: float) -> float:
    value = get_config(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}") from None


def _non_negative_int(key: str, default: int) -> int:
    value = get_config(key, default)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be an integer, got {value!r}") from None
    if number < 0:
        raise ConfigurationError(f"'{key}' must not be negative, got {number}")
    return number


def get_request_timeout() -> float:
    return _number("api.timeout_seconds", DEFAULT_REQUEST_TIMEOUT_SECONDS)


def get_retry_settings() -> Dict[str, Any]:
    """Returns the auth-retry bound and the caller-side backoff policy."""
    return {
        "max_auth_retries": _non_negative_int("auth.max_retries", 1),
        "max_retries": _non_negative_int("retry.max_retries", 3),
        "initial_backoff_seconds": _number("retry.initial_backoff_seconds", 1.0),
        "backoff_factor": _number("retry.backoff_factor", 2.0),
    }


def get_learned_contracts_file() -> Path:
    return Path(get_config("contracts_learned_file", DEFAULT_LEARNED_CONTRACTS_FILE)).expanduser()


def get_contract_seeds() -> List[OperationContract]:
    """Builds OperationContracts from the `contracts:` mapping.

    Example YAML:
        contracts:
          getProducts:
            method: GET
            path: /products
            required: [category]
            defaults: {page_size: 20}
            versions:
              v2: {required: [category, region]}
    """
    raw = get_config("contracts", {}) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError("'contracts' must be a mapping of operation name to contract.")

    seeds: List[OperationContract] = []
    for name, entry in raw.items():
        entry = entry or {}
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Contract for '{name}' must be a mapping.")
        seeds.append(_contract_from_mapping(str(name), entry, version=None))
        for version, version_entry in (entry.get("versions") or {}).items():
            merged = {k: v for k, v in entry.items() if k != "versions"}
            merged.update(version_entry or {})
            seeds.append(_contract_from_mapping(str(name), merged, version=str(version)))
    return seeds


def _contract_from_mapping(name: str, entry: Dict[str, Any], version: Optional[str]) -> OperationContract:
    required = entry.get("required") or []
    defaults = entry.get("defaults") or {}
    if not isinstance(required, (list, tuple, set)):
        raise ConfigurationError(f"'contracts.{name}.required' must be a list.")
    if not isinstance(defaults, dict):
        raise ConfigurationError(f"'contracts.{name}.defaults' must be a mapping.")
    return OperationContract(
        operation_name=name,
        required_parameters=frozenset(str(field) for field in required),
        parameter_defaults=defaults,
        version=version,
        method=str(entry.get("method", "GET")),
        path=entry.get("path"),
    )


def get_rate_limit_settings() -> Dict[str, Any]:
    """Returns {'scope': str, 'default': RateBudgetSettings, 'scopes': {key: RateBudgetSettings}}."""
    default = {
        "max_calls_per_window": _positive_int(
            get_config("rate_limit.max_calls_per_window", DEFAULT_RATE_LIMIT["max_calls_per_window"]),
            "rate_limit.max_calls_per_window",
        ),
        "window_duration_ms": _positive_int(
            get_config("rate_limit.window_duration_ms", DEFAULT_RATE_LIMIT["window_duration_ms"]),
            "rate_limit.window_duration_ms",
        ),
    }
    scopes: Dict[str, RateBudgetSettings] = {}
    for scope, entry in (get_config("rate_limit.scopes", {}) or {}).items():
        entry = entry or {}
        scopes[str(scope)] = {
            "max_calls_per_window": _positive_int(
                entry.get("max_calls_per_window", default["max_calls_per_window"]),
                f"rate_limit.scopes.{scope}.max_calls_per_window",
            ),
            "window_duration_ms": _positive_int(
                entry.get("window_duration_ms", default["window_duration_ms"]),
                f"rate_limit.scopes.{scope}.window_duration_ms",
            ),
        }
    return {
        "scope": str(get_config("rate_limit.scope", DEFAULT_RATE_LIMIT_SCOPE)),
        "default": default,
        "scopes": scopes,
    }


def get_auth_settings() -> Dict[str, Any]:
    """Returns the authentication collaborator settings.

    `auth.mode` is 'token_endpoint' (OAuth2 client credentials) or 'static'
    (a fixed API token). Secrets are best supplied via environment, e.g.
    APIRELAY_AUTH_CLIENT_SECRET or APIRELAY_AUTH_TOKEN.
    """
    mode = str(get_config("auth.mode", "static")).lower()
    settings: Dict[str, Any] = {
        "mode": mode,
        "client_id": get_config("auth.client_id"),
        "refresh_timeout_seconds": _number("auth.refresh_timeout_seconds", 10.0),
        "refresh_leeway_seconds": _number("auth.refresh_leeway_seconds", 0.0),
    }
    if mode == "static":
        token = get_config("auth.token")
        if not token:
            raise ConfigurationError(f"auth.token is required for auth.mode 'static' ({env_var_name('auth.token')}).")
        settings["token"] = str(token)
        settings["token_type"] = str(get_config("auth.token_type", "Bearer"))
    elif mode == "token_endpoint":
        for key in ("token_url", "client_id", "client_secret"):
            value = get_config(f"auth.{key}")
            if not value:
                raise ConfigurationError(f"auth.{key} is required for auth.mode 'token_endpoint'.")
            settings[key] = str(value)
        settings["scope"] = get_config("auth.scope")
    else:
        raise ConfigurationError(f"Unknown auth.mode '{mode}'. Expected 'static' or 'token_endpoint'.")
    return settings
