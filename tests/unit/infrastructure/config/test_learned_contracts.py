import pytest
import yaml

from apirelay.core.services.contract_enforcer import ContractEnforcer
from apirelay.domain.events.api_events import ContractTightened
from apirelay.domain.exceptions import ConfigurationError
from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.outcome import ContractViolation
from apirelay.infrastructure.config.learned_contracts import LearnedContractStore, apply_learned
from apirelay.infrastructure.monitoring.event_log import LoggingEventPublisher


@pytest.fixture
def store(tmp_path):
    return LearnedContractStore(tmp_path / "nested" / "learned_contracts.yaml")


def test_missing_file_loads_empty(store):
    assert store.load() == {}


def test_record_accumulates_fields(store):
    store.record("getProducts", None, ["region"])
    store.record("getProducts", None, ["currency", "region"])
    store.record("getProducts", "v2", ("warehouse",))

    assert store.load() == {
        ("getProducts", None): {"currency", "region"},
        ("getProducts", "v2"): {"warehouse"},
    }
    saved = yaml.safe_load(store.path.read_text())
    assert saved["getProducts"]["required"] == ["currency", "region"]


def test_tightened_contract_is_saved_through_events(store):
    events = LoggingEventPublisher()
    events.subscribe(store.on_contract_tightened, ContractTightened)
    enforcer = ContractEnforcer(event_publisher=events)

    enforcer.learn_contract("getProducts", ["category"])

    assert store.load() == {("getProducts", None): {"category"}}


def test_apply_learned_tightens_seeds_and_derives_versions():
    seeds = [OperationContract("getProducts", {"category"}, method="POST", path="/products")]
    learned = {("getProducts", None): frozenset({"region"}), ("getProducts", "v2"): frozenset({"warehouse"})}

    contracts = {c.key: c for c in apply_learned(seeds, learned)}

    assert contracts[("getProducts", None)].required_parameters == {"category", "region"}
    v2 = contracts[("getProducts", "v2")]
    assert v2.required_parameters == {"category", "region", "warehouse"}
    assert (v2.method, v2.path) == ("POST", "/products")


def test_apply_learned_for_unseeded_operation():
    contracts = apply_learned([], {("listOrders", None): frozenset({"status"})})

    enforcer = ContractEnforcer(contracts=contracts)
    violation = enforcer.prepare("listOrders", {})
    assert isinstance(violation, ContractViolation)
    assert violation.missing_fields == ("status",)


def test_malformed_file_raises(store):
    store.path.parent.mkdir(parents=True)
    store.path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="mapping"):
        store.load()
