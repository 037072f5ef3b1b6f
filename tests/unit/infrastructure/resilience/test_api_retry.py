from unittest.mock import AsyncMock, MagicMock

import pytest

from apirelay.core.services.dispatcher import RequestDispatcher
from apirelay.domain.events.api_events import RetryScheduled
from apirelay.domain.models.outcome import (
    AuthRejected,
    ContractViolation,
    RateLimited,
    Success,
    TransportFailure,
)
from apirelay.domain.models.request import ApiResponse
from apirelay.infrastructure.resilience.api_retry import ApiRetryService

OK = Success(response=ApiResponse(status_code=200, body={"items": []}))


@pytest.fixture
def mock_dispatcher():
    mock = MagicMock(spec=RequestDispatcher)
    mock.dispatch = AsyncMock()
    return mock


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def retry_service(mock_dispatcher, sleep, events):
    return ApiRetryService(
        mock_dispatcher, max_retries=3, initial_backoff_s=1.0, backoff_factor=2.0, sleep=sleep, event_publisher=events
    )


@pytest.mark.asyncio
async def test_success_returned_without_retry(retry_service, mock_dispatcher, sleep):
    mock_dispatcher.dispatch.return_value = OK

    outcome = await retry_service.execute_with_retry("getProducts", {"category": "shoes"})

    assert outcome is OK
    mock_dispatcher.dispatch.assert_awaited_once_with("getProducts", {"category": "shoes"})
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_rate_limited_waits_for_hint(retry_service, mock_dispatcher, sleep, events):
    mock_dispatcher.dispatch.side_effect = [RateLimited(retry_after_ms=700), OK]

    outcome = await retry_service.execute_with_retry("getProducts")

    assert outcome is OK
    sleep.assert_awaited_once_with(pytest.approx(0.7))
    assert events.of_type(RetryScheduled)[0].reason == "rate_limited"


@pytest.mark.asyncio
async def test_transport_failures_back_off_exponentially(retry_service, mock_dispatcher, sleep):
    failure = TransportFailure(cause=OSError("reset"))
    mock_dispatcher.dispatch.side_effect = [failure, failure, failure, failure]

    outcome = await retry_service.execute_with_retry("getProducts")

    assert outcome is failure
    assert mock_dispatcher.dispatch.await_count == 4
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outcome",
    [
        ContractViolation(operation_name="getProducts", missing_fields=("category",)),
        AuthRejected(status_code=401, attempts=2),
    ],
)
async def test_caller_fixable_outcomes_not_retried(retry_service, mock_dispatcher, sleep, outcome):
    mock_dispatcher.dispatch.return_value = outcome

    assert await retry_service.execute_with_retry("getProducts") is outcome
    mock_dispatcher.dispatch.assert_awaited_once()
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_delay_is_capped(mock_dispatcher, sleep):
    service = ApiRetryService(mock_dispatcher, max_retries=1, max_backoff_s=5.0, sleep=sleep)
    mock_dispatcher.dispatch.side_effect = [RateLimited(retry_after_ms=120_000, origin="remote"), OK]

    await service.execute_with_retry("getProducts")

    sleep.assert_awaited_once_with(5.0)


def test_from_policy(mock_dispatcher):
    service = ApiRetryService.from_policy(mock_dispatcher, {"max_retries": 7, "initial_delay": 0.5, "factor": 3.0})
    assert (service.max_retries, service.initial_backoff_s, service.backoff_factor) == (7, 0.5, 3.0)


def test_negative_retries_rejected(mock_dispatcher):
    with pytest.raises(ValueError):
        ApiRetryService(mock_dispatcher, max_retries=-1)
