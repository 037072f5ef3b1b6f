import asyncio
from typing import Callable, List, Optional

import pytest

from apirelay.core.services.contract_enforcer import ContractEnforcer
from apirelay.core.services.credential_manager import CredentialManager
from apirelay.core.services.dispatcher import RequestDispatcher
from apirelay.domain.interfaces.authenticator import Authenticator
from apirelay.domain.interfaces.transport import ApiTransport
from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.credential import Credential
from apirelay.domain.models.request import ApiResponse, OutboundRequest
from apirelay.infrastructure.config.settings import clear_test_config
from apirelay.infrastructure.monitoring.event_log import RecordingEventPublisher
from apirelay.infrastructure.resilience.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    """Manually advanced clock; callable like time.time."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, delta: float) -> None:
        self.now += delta


class FakeAuthenticator(Authenticator):
    """Issues tokens 'token-1', 'token-2', ... and counts refreshes."""

    def __init__(self, clock: Callable[[], float], lifetime: Optional[float] = 1000.0):
        self.clock = clock
        self.lifetime = lifetime
        self.calls = 0
        self.previous_seen: List[Optional[Credential]] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None

    async def refresh(self, previous: Optional[Credential] = None) -> Credential:
        self.calls += 1
        self.previous_seen.append(previous)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        now = self.clock()
        return Credential(
            token_value=f"token-{self.calls}",
            issued_at=now,
            expires_at=None if self.lifetime is None else now + self.lifetime,
        )


class ScriptedTransport(ApiTransport):
    """Returns queued responses (or raises queued exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[OutboundRequest] = []

    def queue(self, *responses) -> None:
        self.responses.extend(responses)

    async def send(self, request: OutboundRequest) -> ApiResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request}")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response


@pytest.fixture(autouse=True)
def reset_test_config():
    clear_test_config()
    yield
    clear_test_config()


@pytest.fixture
def clock():
    return FakeClock(now=0.0)


@pytest.fixture
def events():
    return RecordingEventPublisher()


@pytest.fixture
def authenticator(clock):
    return FakeAuthenticator(clock)


@pytest.fixture
def credential_manager(authenticator, clock, events):
    return CredentialManager(authenticator=authenticator, clock=clock, event_publisher=events)


@pytest.fixture
def enforcer(events):
    return ContractEnforcer(
        contracts=[OperationContract(operation_name="getProducts", required_parameters={"category"}, path="/products")],
        event_publisher=events,
    )


@pytest.fixture
def rate_limiter(clock):
    return SlidingWindowRateLimiter(max_calls_per_window=100, window_duration_ms=1000, clock=clock)


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def dispatcher(enforcer, rate_limiter, credential_manager, transport, events):
    return RequestDispatcher(
        contract_enforcer=enforcer,
        rate_limiter=rate_limiter,
        credential_manager=credential_manager,
        transport=transport,
        event_publisher=events,
    )
