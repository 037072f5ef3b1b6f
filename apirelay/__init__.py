"""apirelay: a resilient API request layer.

Mediates every outbound call to a remote API whose contract changes:
enforces and learns request contracts, keeps credentials fresh and paces
calls against a sliding-window rate limit.
"""

from apirelay.core.services.contract_enforcer import ContractEnforcer
from apirelay.core.services.credential_manager import CredentialManager
from apirelay.core.services.dispatcher import CallState, RequestDispatcher
from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.credential import Credential
from apirelay.domain.models.outcome import (
    AuthRejected,
    CallOutcome,
    ContractViolation,
    CredentialRefreshFailed,
    RateLimited,
    Success,
    TransportFailure,
)
from apirelay.infrastructure.resilience.rate_limiter import SlidingWindowRateLimiter

__version__ = "0.1.0"

__all__ = [
    "AuthRejected",
    "CallOutcome",
    "CallState",
    "ContractEnforcer",
    "ContractViolation",
    "Credential",
    "CredentialManager",
    "CredentialRefreshFailed",
    "OperationContract",
    "RateLimited",
    "RequestDispatcher",
    "SlidingWindowRateLimiter",
    "Success",
    "TransportFailure",
]
