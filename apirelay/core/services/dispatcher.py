"""Request Dispatcher: mediates every outbound call.

Composes the contract enforcer, the rate limiter and the credential
manager, then issues the call through the transport. Each call walks an
explicit state machine:

    PREPARING -> RATE_CHECKING -> AUTHENTICATING -> SENDING
        SENDING -> SUCCEEDED | RETRYING | FAILED
        RETRYING -> RATE_CHECKING

RETRYING is bounded by a per-call auth-retry counter, so a broken
authentication collaborator can never cause an unbounded loop.
"""

import asyncio
import enum
import logging
import time
from typing import Any, Mapping, Optional

from apirelay.core.services.contract_enforcer import ContractEnforcer
from apirelay.core.services.credential_manager import CredentialManager
from apirelay.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallFailed,
    ApiCallInitiated,
    ApiCallSucceeded,
    AuthRetryScheduled,
)
from apirelay.domain.exceptions import AuthRefreshFailed, TransportError, UnexpectedStatusError
from apirelay.domain.interfaces.events import EventPublisher, NullEventPublisher
from apirelay.domain.interfaces.transport import ApiTransport
from apirelay.domain.models.credential import Credential
from apirelay.domain.models.outcome import (
    LOCAL,
    REMOTE,
    SERVER,
    AuthRejected,
    CallOutcome,
    ContractViolation,
    CredentialRefreshFailed,
    RateLimited,
    Success,
    TransportFailure,
    sorted_fields,
)
from apirelay.domain.models.request import ApiResponse, OutboundRequest
from apirelay.infrastructure.resilience.rate_limiter import SlidingWindowRateLimiter
from apirelay.infrastructure.resilience.scoping import ScopeStrategy, endpoint_scope

logger = logging.getLogger(__name__)

DEFAULT_CALL_TIMEOUT_SECONDS = 30.0


class CallState(enum.Enum):
    PREPARING = "preparing"
    RATE_CHECKING = "rate_checking"
    AUTHENTICATING = "authenticating"
    SENDING = "sending"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATES = frozenset({CallState.SUCCEEDED, CallState.FAILED})


class RequestDispatcher:
    """Issues calls against the remote API without callers knowing its current rules."""

    def __init__(
        self,
        contract_enforcer: ContractEnforcer,
        rate_limiter: SlidingWindowRateLimiter,
        credential_manager: CredentialManager,
        transport: ApiTransport,
        scope_strategy: ScopeStrategy = endpoint_scope,
        max_auth_retries: int = 1,
        call_timeout_s: Optional[float] = DEFAULT_CALL_TIMEOUT_SECONDS,
        event_publisher: Optional[EventPublisher] = None,
    ):
        """Initializes the dispatcher. All shared state is injected.

        Args:
            contract_enforcer: Validates and augments requests.
            rate_limiter: Paces calls per scope.
            credential_manager: Supplies a fresh credential for each attempt.
            transport: The remote API collaborator.
            scope_strategy: Maps a prepared request to its rate-limit scope.
            max_auth_retries: Refresh-and-retry cycles allowed per call after
                an auth rejection.
            call_timeout_s: Default timeout for the outbound call; None disables it.
            event_publisher: Receives call lifecycle events.
        """
        if max_auth_retries < 0:
            raise ValueError("max_auth_retries must not be negative.")
        self.contract_enforcer = contract_enforcer
        self.rate_limiter = rate_limiter
        self.credential_manager = credential_manager
        self.transport = transport
        self.scope_strategy = scope_strategy
        self.max_auth_retries = max_auth_retries
        self.call_timeout_s = call_timeout_s
        self._events = event_publisher or NullEventPublisher()
        logger.info(
            f"RequestDispatcher initialized: transport={transport.__class__.__name__}, "
            f"max_auth_retries={max_auth_retries}, call_timeout={call_timeout_s}s"
        )

    async def dispatch(
        self,
        operation_name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        *,
        version: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        method: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> CallOutcome:
        """Runs one logical call to a terminal state and returns its outcome.

        Args:
            operation_name: Logical operation, used to look up its contract.
            parameters: Caller-supplied request parameters.
            version: Contract version tag, where the server versions contracts.
            headers: Extra request headers.
            body: Explicit request body.
            method: Overrides the contract's HTTP method.
            timeout_s: Overrides the default call timeout.

        Returns:
            Success, or the Failed outcome variant describing why the call stopped.
        """
        state = CallState.PREPARING
        outcome: Optional[CallOutcome] = None
        request: Optional[OutboundRequest] = None
        prepared: Optional[OutboundRequest] = None
        credential: Optional[Credential] = None
        scope = ""
        auth_retries = 0
        auth_status: Optional[int] = None
        attempt = 0
        effective_timeout = self.call_timeout_s if timeout_s is None else timeout_s

        while state not in TERMINAL_STATES:
            logger.debug(f"[{operation_name}] state={state.value}")

            if state is CallState.PREPARING:
                result = self.contract_enforcer.prepare(
                    operation_name, parameters, version=version, headers=headers, body=body, method=method
                )
                if isinstance(result, ContractViolation):
                    outcome, state = result, CallState.FAILED
                else:
                    prepared = result
                    scope = self.scope_strategy(prepared)
                    state = CallState.RATE_CHECKING

            elif state is CallState.RATE_CHECKING:
                decision = self.rate_limiter.try_acquire(scope)
                if decision.admitted:
                    state = CallState.AUTHENTICATING
                else:
                    logger.warning(
                        f"Call '{operation_name}' denied by local rate limit on '{scope}'. "
                        f"Retry after {decision.retry_after_ms:.0f} ms."
                        + (f" The previous attempt was rejected with HTTP {auth_status}." if auth_status else "")
                    )
                    self._events.publish(ApiCallDeferred(
                        operation=operation_name, scope=scope, retry_after_ms=decision.retry_after_ms, origin=LOCAL
                    ))
                    outcome = RateLimited(retry_after_ms=decision.retry_after_ms, origin=LOCAL, auth_status=auth_status)
                    state = CallState.FAILED

            elif state is CallState.AUTHENTICATING:
                try:
                    credential = await self.credential_manager.current_credential()
                except AuthRefreshFailed as e:
                    logger.error(f"Call '{operation_name}' aborted: {e}")
                    outcome, state = CredentialRefreshFailed(cause=e), CallState.FAILED
                else:
                    header_name, header_value = credential.authorization_header()
                    request = prepared.with_header(header_name, header_value)
                    state = CallState.SENDING

            elif state is CallState.SENDING:
                attempt += 1
                self._events.publish(ApiCallInitiated(operation=operation_name, scope=scope, attempt=attempt))
                try:
                    response = await self._send(request, effective_timeout)
                except TransportError as e:
                    logger.error(f"Transport failure calling '{operation_name}': {e}")
                    outcome, state = TransportFailure(cause=e), CallState.FAILED
                    continue

                if response.is_success:
                    outcome, state = Success(response=response), CallState.SUCCEEDED
                elif response.is_auth_rejection:
                    self.credential_manager.invalidate(credential)
                    if auth_retries < self.max_auth_retries:
                        auth_retries += 1
                        auth_status = response.status_code
                        logger.warning(
                            f"Auth rejected ({response.status_code}) for '{operation_name}'. "
                            f"Refreshing credential and retrying ({auth_retries}/{self.max_auth_retries})."
                        )
                        self._events.publish(AuthRetryScheduled(
                            operation=operation_name, attempt_number=auth_retries, status_code=response.status_code
                        ))
                        state = CallState.RETRYING
                    else:
                        outcome = AuthRejected(status_code=response.status_code, attempts=attempt)
                        state = CallState.FAILED
                elif response.is_validation_rejection:
                    outcome, state = self._contract_rejection(operation_name, version, response), CallState.FAILED
                elif response.is_rate_rejection:
                    logger.warning(
                        f"Remote rate limit hit for '{operation_name}' (retry_after={response.retry_after_ms} ms)."
                    )
                    self._events.publish(ApiCallDeferred(
                        operation=operation_name, scope=scope, retry_after_ms=response.retry_after_ms, origin=REMOTE
                    ))
                    outcome = RateLimited(retry_after_ms=response.retry_after_ms, origin=REMOTE)
                    state = CallState.FAILED
                else:
                    error = UnexpectedStatusError(response.status_code, response.body)
                    logger.error(f"Call '{operation_name}' failed: {error}")
                    outcome, state = TransportFailure(cause=error), CallState.FAILED

            elif state is CallState.RETRYING:
                # A retry is another outbound call, so it is paced like one
                state = CallState.RATE_CHECKING

        if state is CallState.SUCCEEDED:
            self._events.publish(ApiCallSucceeded(
                operation=operation_name, status_code=outcome.response.status_code, latency_ms=outcome.response.latency_ms
            ))
        else:
            self._events.publish(ApiCallFailed(operation=operation_name, outcome_kind=outcome.kind, detail=repr(outcome)))
        return outcome

    async def _send(self, request: OutboundRequest, timeout_s: Optional[float]) -> ApiResponse:
        start_time = time.perf_counter()
        try:
            if timeout_s is None:
                response = await self.transport.send(request)
            else:
                response = await asyncio.wait_for(self.transport.send(request), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Call '{request.operation_name}' timed out after {timeout_s}s") from e
        if response.latency_ms is None:
            response.latency_ms = (time.perf_counter() - start_time) * 1000
        return response

    def _contract_rejection(self, operation_name: str, version: Optional[str], response: ApiResponse) -> ContractViolation:
        if response.missing_fields:
            self.contract_enforcer.learn_contract(operation_name, response.missing_fields, version=version)
        logger.error(
            f"Server rejected '{operation_name}': missing={list(response.missing_fields)}, "
            f"invalid={list(response.invalid_fields)}"
        )
        return ContractViolation(
            operation_name=operation_name,
            missing_fields=sorted_fields(response.missing_fields),
            invalid_fields=sorted_fields(response.invalid_fields),
            origin=SERVER,
        )
