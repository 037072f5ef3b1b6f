"""Domain Events related to API calls and resilience.

Examples include events for when calls are deferred, retried, fail, or
succeed, and for when credentials or contracts change.
"""

from dataclasses import dataclass, field
import time
from typing import Optional, Tuple

# Base Event Class
@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass

# --- Call lifecycle events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a call is about to be sent."""
    operation: str
    scope: str
    attempt: int = 1
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when a call succeeds."""
    operation: str
    status_code: int
    latency_ms: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a call reaches a Failed terminal state."""
    operation: str
    outcome_kind: str
    detail: str = ""
    timestamp: float = field(default_factory=time.time)

@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a call is denied by rate limiting."""
    operation: str
    scope: str
    retry_after_ms: Optional[float]
    origin: str = "local"
    timestamp: float = field(default_factory=time.time)

@dataclass
class AuthRetryScheduled(DomainEvent):
    """Event triggered when an auth rejection leads to a refresh-and-retry."""
    operation: str
    attempt_number: int
    status_code: int
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when the caller-side retry layer schedules another attempt."""
    operation: str
    attempt_number: int
    delay_seconds: float
    reason: str
    timestamp: float = field(default_factory=time.time)

# --- State change events ---

@dataclass
class CredentialRefreshed(DomainEvent):
    """Event triggered when a new credential replaces the cached one."""
    issued_at: float
    expires_at: Optional[float]
    timestamp: float = field(default_factory=time.time)

@dataclass
class ContractTightened(DomainEvent):
    """Event triggered when server feedback adds required parameters."""
    operation: str
    version: Optional[str]
    added_fields: Tuple[str, ...]
    timestamp: float = field(default_factory=time.time)
