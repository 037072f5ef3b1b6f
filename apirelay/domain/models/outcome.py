"""Call outcomes and rate-limiter decisions.

Every terminal state of a dispatched call is one of the CallOutcome
variants below. Each carries the structured detail a caller needs to act
without parsing a message: field names, a retry-after duration, a status
code or the underlying exception.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Iterable, Optional, Tuple

from apirelay.domain.models.request import ApiResponse

LOCAL = "local"
SERVER = "server"
REMOTE = "remote"


def sorted_fields(fields: Iterable[str]) -> Tuple[str, ...]:
    return tuple(sorted(set(fields)))


@dataclass(frozen=True)
class CallOutcome:
    """Base class for the result of one dispatched call."""
    kind: ClassVar[str] = "outcome"
    succeeded: ClassVar[bool] = False
    # True when the same call may work later without changing it
    retryable_later: ClassVar[bool] = False


@dataclass(frozen=True)
class Success(CallOutcome):
    kind: ClassVar[str] = "success"
    succeeded: ClassVar[bool] = True

    response: ApiResponse

    @property
    def body(self) -> Any:
        return self.response.body


@dataclass(frozen=True)
class ContractViolation(CallOutcome):
    """The caller must fix the call: required fields are missing or invalid."""
    kind: ClassVar[str] = "contract_violation"

    operation_name: str
    missing_fields: Tuple[str, ...] = ()
    invalid_fields: Tuple[str, ...] = ()
    origin: str = LOCAL  # 'local' (enforcer) or 'server' (422)

    @property
    def fields(self) -> Tuple[str, ...]:
        return sorted_fields(self.missing_fields + self.invalid_fields)


@dataclass(frozen=True)
class AuthRejected(CallOutcome):
    kind: ClassVar[str] = "auth_rejected"

    status_code: int
    attempts: int


@dataclass(frozen=True)
class CredentialRefreshFailed(CallOutcome):
    kind: ClassVar[str] = "auth_refresh_failed"

    cause: BaseException


@dataclass(frozen=True)
class RateLimited(CallOutcome):
    kind: ClassVar[str] = "rate_limited"
    retryable_later: ClassVar[bool] = True

    retry_after_ms: Optional[float] = None
    origin: str = LOCAL  # 'local' (own limiter) or 'remote' (429)
    # Set when the denied attempt was the refresh-and-retry after an auth rejection
    auth_status: Optional[int] = None


@dataclass(frozen=True)
class TransportFailure(CallOutcome):
    kind: ClassVar[str] = "transport_failure"
    retryable_later: ClassVar[bool] = True

    cause: BaseException


# --- Rate limiter decisions ---

@dataclass(frozen=True)
class Admitted:
    admitted: ClassVar[bool] = True


@dataclass(frozen=True)
class Denied:
    admitted: ClassVar[bool] = False

    retry_after_ms: float
