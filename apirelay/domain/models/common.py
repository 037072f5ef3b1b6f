"""Defines common Value Objects used across the request layer.

These objects represent simple values like operation names, scope keys
and parameter names, keeping signatures self-describing.
"""

from typing import Any, Dict, NewType, Optional, Tuple, TypedDict

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are plain values at runtime.
OperationName = NewType("OperationName", str)    # Logical server operation, e.g. 'getProducts'
ParameterName = NewType("ParameterName", str)    # Name of a request parameter
VersionTag = NewType("VersionTag", str)          # Server-side contract version, e.g. 'v2'
ScopeKey = NewType("ScopeKey", str)              # Rate-limit scope, e.g. 'GET /products'
TokenValue = NewType("TokenValue", str)          # Opaque auth token

# Milliseconds everywhere in the rate limiter; seconds for credential expiry
Milliseconds = NewType("Milliseconds", float)

ContractKey = Tuple[str, Optional[str]]          # (operation_name, version)

Parameters = Dict[str, Any]

# --- Structured Data ---

class BackoffPolicy(TypedDict):
    """Value Object representing caller-side retry backoff configuration."""
    max_retries: int
    initial_delay: float
    factor: float

class RateBudgetSettings(TypedDict):
    """Size of a rate budget as read from configuration."""
    max_calls_per_window: int
    window_duration_ms: int
