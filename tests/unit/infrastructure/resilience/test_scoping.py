import pytest

from apirelay.domain.exceptions import ConfigurationError
from apirelay.domain.models.request import OutboundRequest
from apirelay.infrastructure.resilience.scoping import resolve_scope_strategy

REQUEST = OutboundRequest(operation_name="getProducts", method="GET", url="/products")


@pytest.mark.parametrize(
    "name, expected",
    [
        ("global", "global"),
        ("operation", "getProducts"),
        ("endpoint", "GET /products"),
        ("Endpoint ", "GET /products"),
    ],
)
def test_named_strategies(name, expected):
    assert resolve_scope_strategy(name)(REQUEST) == expected


def test_client_strategy_uses_client_id():
    assert resolve_scope_strategy("client", client_id="shop-42")(REQUEST) == "client:shop-42"


def test_client_strategy_requires_client_id():
    with pytest.raises(ConfigurationError, match="client_id"):
        resolve_scope_strategy("client")


def test_unknown_strategy_rejected():
    with pytest.raises(ConfigurationError, match="Unknown rate_limit.scope"):
        resolve_scope_strategy("per-tenant")
