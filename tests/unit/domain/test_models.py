import pytest

from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.credential import Credential
from apirelay.domain.models.outcome import (
    AuthRejected,
    ContractViolation,
    CredentialRefreshFailed,
    RateLimited,
    Success,
    TransportFailure,
)
from apirelay.domain.models.request import ApiResponse, OutboundRequest


def test_credential_validity_window():
    credential = Credential(token_value="abc", issued_at=0, expires_at=500)
    assert credential.is_valid(499)
    assert not credential.is_valid(500)
    assert not credential.is_valid(450, leeway=60)


def test_credential_with_unknown_expiry_is_valid_until_rejected():
    credential = Credential(token_value="abc", issued_at=0)
    assert credential.is_valid(10**9)
    assert not credential.expired().is_valid(0)


def test_credential_repr_hides_token():
    assert "abc" not in repr(Credential(token_value="abc", issued_at=0))


def test_authorization_header():
    assert Credential(token_value="abc", issued_at=0).authorization_header() == ("Authorization", "Bearer abc")
    assert Credential(token_value="abc", issued_at=0, token_type="").authorization_header() == ("Authorization", "abc")


def test_contract_revisions_only_grow():
    contract = OperationContract("getProducts", required_parameters=["category"])
    tightened = contract.with_required({"region"})

    assert contract.required_parameters == {"category"}
    assert tightened.required_parameters == {"category", "region"}
    assert tightened.revision == contract.revision + 1


def test_contract_defaults_are_read_only():
    contract = OperationContract("getProducts", parameter_defaults={"page": 1})
    with pytest.raises(TypeError):
        contract.parameter_defaults["page"] = 2


def test_contract_requires_a_name():
    with pytest.raises(ValueError):
        OperationContract("")


def test_with_header_returns_copy():
    request = OutboundRequest(operation_name="op", method="GET", url="/op")
    authed = request.with_header("Authorization", "Bearer x")
    assert request.headers == {}
    assert authed.headers == {"Authorization": "Bearer x"}


def test_outcome_classification():
    assert Success(response=ApiResponse(status_code=200)).succeeded
    assert RateLimited(retry_after_ms=10).retryable_later
    assert TransportFailure(cause=OSError("down")).retryable_later
    for outcome in (
        ContractViolation(operation_name="op", missing_fields=("a",)),
        AuthRejected(status_code=401, attempts=2),
        CredentialRefreshFailed(cause=RuntimeError("x")),
    ):
        assert not outcome.succeeded
        assert not outcome.retryable_later


def test_violation_fields_merge_missing_and_invalid():
    violation = ContractViolation(operation_name="op", missing_fields=("b",), invalid_fields=("a",))
    assert violation.fields == ("a", "b")
