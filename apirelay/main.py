"""Main entry point for the apirelay CLI.

Sets up the Typer CLI application, performs dependency injection
(Composition Root), defines CLI commands, and delegates execution to the
CommandHandler.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from typing_extensions import Annotated

# --- Core Layer ---
from apirelay.core.command_handler import CommandHandler
from apirelay.core.services.contract_enforcer import ContractEnforcer
from apirelay.core.services.credential_manager import CredentialManager
from apirelay.core.services.dispatcher import RequestDispatcher

# --- Domain Layer ---
from apirelay.domain.events.api_events import ContractTightened
from apirelay.domain.exceptions import ConfigurationError
from apirelay.domain.interfaces.authenticator import Authenticator

# --- Infrastructure Layer ---
from apirelay.infrastructure.auth.static_token import StaticTokenAuthenticator
from apirelay.infrastructure.auth.token_endpoint import TokenEndpointAuthenticator
from apirelay.infrastructure.cli.display import ConsoleDisplay
from apirelay.infrastructure.config.settings import (
    DEFAULT_CONFIG_FILE,
    get_api_base_url,
    get_auth_settings,
    get_config,
    get_contract_seeds,
    get_learned_contracts_file,
    get_rate_limit_settings,
    get_request_timeout,
    get_retry_settings,
    load_configuration,
)
from apirelay.infrastructure.config.learned_contracts import LearnedContractStore, apply_learned
from apirelay.infrastructure.http.httpx_transport import HttpxTransport
from apirelay.infrastructure.monitoring.event_log import RecordingEventPublisher
from apirelay.infrastructure.monitoring.logger_setup import setup_logging
from apirelay.infrastructure.resilience.api_retry import ApiRetryService
from apirelay.infrastructure.resilience.rate_limiter import SlidingWindowRateLimiter
from apirelay.infrastructure.resilience.scoping import resolve_scope_strategy

logger = logging.getLogger(__name__)

# --- Dependency Injection (Manual) ---

def build_authenticator(auth_settings: Dict[str, Any]) -> Authenticator:
    if auth_settings["mode"] == "token_endpoint":
        return TokenEndpointAuthenticator(
            token_url=auth_settings["token_url"],
            client_id=auth_settings["client_id"],
            client_secret=auth_settings["client_secret"],
            scope=auth_settings.get("scope"),
            timeout_s=auth_settings["refresh_timeout_seconds"],
        )
    return StaticTokenAuthenticator(token=auth_settings["token"], token_type=auth_settings["token_type"])


def build_rate_limiter(settings: Dict[str, Any]) -> SlidingWindowRateLimiter:
    default = settings["default"]
    limiter = SlidingWindowRateLimiter(
        max_calls_per_window=default["max_calls_per_window"],
        window_duration_ms=default["window_duration_ms"],
    )
    for scope, budget in settings["scopes"].items():
        limiter.configure_scope(scope, budget["max_calls_per_window"], budget["window_duration_ms"])
    return limiter


def create_dependencies(
    config_file: Path = DEFAULT_CONFIG_FILE,
    include_remote: bool = True,
    ui: Optional[ConsoleDisplay] = None,
) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root. Every shared piece of state (rate
    budgets, credential cache, contract table) is created here and injected,
    so independent clients never share it by accident.

    Args:
        config_file: YAML configuration file.
        include_remote: Also build the transport, authenticator and
            dispatcher. Commands that never contact the API skip them.
        ui: Display to use; a new ConsoleDisplay by default.

    Raises:
        ConfigurationError: If required settings are missing or malformed.
    """
    load_configuration(config_file=config_file)
    setup_logging(
        log_level=get_config("logging.level", "WARNING"),
        log_format=get_config("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"),
        log_file=get_config("logging.file"),
    )

    dependencies: Dict[str, Any] = {}
    dependencies["ui"] = ui or ConsoleDisplay()
    dependencies["events"] = RecordingEventPublisher()
    # Fields the server demanded on earlier runs stay required
    dependencies["learned_contracts"] = LearnedContractStore(get_learned_contracts_file())
    dependencies["events"].subscribe(dependencies["learned_contracts"].on_contract_tightened, ContractTightened)
    dependencies["contract_enforcer"] = ContractEnforcer(
        contracts=apply_learned(get_contract_seeds(), dependencies["learned_contracts"].load()),
        strict=bool(get_config("contracts_strict", False)),
        event_publisher=dependencies["events"],
    )

    if include_remote:
        auth_settings = get_auth_settings()
        retry_settings = get_retry_settings()
        rate_settings = get_rate_limit_settings()
        dependencies["rate_limiter"] = build_rate_limiter(rate_settings)
        dependencies["credential_manager"] = CredentialManager(
            authenticator=build_authenticator(auth_settings),
            refresh_timeout_s=auth_settings["refresh_timeout_seconds"],
            refresh_leeway_s=auth_settings["refresh_leeway_seconds"],
            event_publisher=dependencies["events"],
        )
        dependencies["transport"] = HttpxTransport(base_url=get_api_base_url(), timeout_s=get_request_timeout())
        dependencies["dispatcher"] = RequestDispatcher(
            contract_enforcer=dependencies["contract_enforcer"],
            rate_limiter=dependencies["rate_limiter"],
            credential_manager=dependencies["credential_manager"],
            transport=dependencies["transport"],
            scope_strategy=resolve_scope_strategy(rate_settings["scope"], auth_settings.get("client_id")),
            max_auth_retries=retry_settings["max_auth_retries"],
            call_timeout_s=get_request_timeout(),
            event_publisher=dependencies["events"],
        )
        dependencies["retry_service"] = ApiRetryService(
            dispatcher=dependencies["dispatcher"],
            max_retries=retry_settings["max_retries"],
            initial_backoff_s=retry_settings["initial_backoff_seconds"],
            backoff_factor=retry_settings["backoff_factor"],
            event_publisher=dependencies["events"],
        )

    dependencies["command_handler"] = CommandHandler(
        contract_enforcer=dependencies["contract_enforcer"],
        ui=dependencies["ui"],
        dispatcher=dependencies.get("dispatcher"),
        retry_service=dependencies.get("retry_service"),
        event_recorder=dependencies["events"],
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="apirelay",
    help="apirelay: resilient API request layer (contracts, credentials, rate limits).",
    add_completion=False,
)

_state: Dict[str, Any] = {"config_file": DEFAULT_CONFIG_FILE}


def parse_parameters(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """Turns ['category=shoes', 'limit=10'] into {'category': 'shoes', 'limit': 10}.

    Values that parse as JSON (numbers, booleans, lists) are decoded;
    everything else stays a string.
    """
    parameters: Dict[str, Any] = {}
    for pair in pairs or []:
        name, sep, raw = pair.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--param")
        try:
            parameters[name] = json.loads(raw)
        except ValueError:
            parameters[name] = raw
    return parameters


def _handler(include_remote: bool) -> CommandHandler:
    try:
        dependencies = create_dependencies(config_file=_state["config_file"], include_remote=include_remote)
    except ConfigurationError as e:
        ConsoleDisplay().display_error(f"Configuration error: {e}")
        raise typer.Exit(code=2)
    return dependencies["command_handler"]


ParamOption = Annotated[
    Optional[List[str]],
    typer.Option("--param", "-p", help="Request parameter as key=value. Repeatable."),
]
VersionOption = Annotated[
    Optional[str],
    typer.Option("--version", "-v", help="Contract version tag, where the API versions its contracts."),
]
MethodOption = Annotated[
    Optional[str],
    typer.Option("--method", "-m", help="Override the HTTP method from the contract."),
]


@app.command()
def call(
    operation: Annotated[str, typer.Argument(help="Logical operation name, e.g. getProducts.")],
    param: ParamOption = None,
    version: VersionOption = None,
    method: MethodOption = None,
    body: Annotated[Optional[str], typer.Option("--body", help="JSON request body.")] = None,
    retry: Annotated[bool, typer.Option("--retry", help="Back off and retry rate-limited or transport failures.")] = False,
    events: Annotated[bool, typer.Option("--events", help="Show the events emitted during the call.")] = False,
):
    """Dispatch a call to the remote API and show the outcome."""
    parameters = parse_parameters(param)
    try:
        decoded_body = json.loads(body) if body is not None else None
    except ValueError as e:
        raise typer.BadParameter(f"--body is not valid JSON: {e}")
    handler = _handler(include_remote=True)

    async def _run():
        try:
            return await handler.handle_call(
                operation, parameters, version=version, method=method, body=decoded_body,
                use_retry=retry, show_events=events,
            )
        finally:
            await handler.aclose()

    outcome = asyncio.run(_run())
    if outcome is None or not outcome.succeeded:
        raise typer.Exit(code=1)


@app.command()
def prepare(
    operation: Annotated[str, typer.Argument(help="Logical operation name.")],
    param: ParamOption = None,
    version: VersionOption = None,
    method: MethodOption = None,
):
    """Validate parameters against the contract without sending anything."""
    handler = _handler(include_remote=False)
    if not handler.handle_prepare(operation, parse_parameters(param), version=version, method=method):
        raise typer.Exit(code=1)


@app.command()
def contracts():
    """List the registered operation contracts."""
    _handler(include_remote=False).handle_list_contracts()


@app.callback()
def main_callback(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help="Path to the YAML configuration file."),
    ] = DEFAULT_CONFIG_FILE,
):
    """Resilient API request layer."""
    _state["config_file"] = config


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
