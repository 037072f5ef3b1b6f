"""Rate-limit scoping strategies.

A scope strategy maps a prepared request to the key its rate budget is
tracked under. Which granularity the remote API enforces varies, so the
choice is configuration (`rate_limit.scope`), not code.
"""

from typing import Callable, Dict, Optional

from apirelay.domain.exceptions import ConfigurationError
from apirelay.domain.models.request import OutboundRequest

ScopeStrategy = Callable[[OutboundRequest], str]

GLOBAL_SCOPE = "global"


def global_scope(request: OutboundRequest) -> str:
    return GLOBAL_SCOPE


def operation_scope(request: OutboundRequest) -> str:
    return request.operation_name


def endpoint_scope(request: OutboundRequest) -> str:
    return f"{request.method} {request.url}"


def client_scope(client_id: str) -> ScopeStrategy:
    """One budget per API client (credential owner)."""
    key = f"client:{client_id}"

    def _scope(request: OutboundRequest) -> str:
        return key

    return _scope


_STRATEGIES: Dict[str, ScopeStrategy] = {
    "global": global_scope,
    "operation": operation_scope,
    "endpoint": endpoint_scope,
}


def resolve_scope_strategy(name: str, client_id: Optional[str] = None) -> ScopeStrategy:
    """Returns the strategy registered under `name`.

    Raises:
        ConfigurationError: For unknown names, or 'client' without a client id.
    """
    normalized = (name or "").strip().lower()
    if normalized == "client":
        if not client_id:
            raise ConfigurationError("rate_limit.scope 'client' requires auth.client_id to be set.")
        return client_scope(client_id)
    try:
        return _STRATEGIES[normalized]
    except KeyError:
        raise ConfigurationError(
            f"Unknown rate_limit.scope '{name}'. Expected one of: client, {', '.join(sorted(_STRATEGIES))}."
        ) from None
