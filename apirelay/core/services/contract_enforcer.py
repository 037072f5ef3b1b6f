"""Request Contract Enforcer.

Knows, per logical operation, which parameters are mandatory, injects
registered defaults and rejects incomplete calls locally. The contract
table starts from seed data and only ever tightens from server feedback:
fields are never removed automatically.

The table is single-writer, multi-reader. Contracts are immutable; a write
builds a new revision and swaps it in under the lock, so a reader sees
either the old or the new required set, never a partial merge.
"""

import dataclasses
import logging
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from apirelay.domain.events.api_events import ContractTightened
from apirelay.domain.exceptions import UnknownOperationError
from apirelay.domain.interfaces.events import EventPublisher, NullEventPublisher
from apirelay.domain.models.common import ContractKey
from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.outcome import LOCAL, ContractViolation, sorted_fields
from apirelay.domain.models.request import OutboundRequest

logger = logging.getLogger(__name__)


class ContractEnforcer:
    """Validates and augments requests against the known operation contracts."""

    def __init__(
        self,
        contracts: Optional[Iterable[OperationContract]] = None,
        strict: bool = False,
        event_publisher: Optional[EventPublisher] = None,
    ):
        """Initializes the enforcer.

        Args:
            contracts: Seed contracts registered at startup.
            strict: If True, `prepare` raises UnknownOperationError for
                operations without a registered contract. Otherwise such
                operations get an empty, permissive contract.
            event_publisher: Receives ContractTightened events.
        """
        self._contracts: Dict[ContractKey, OperationContract] = {}
        self._lock = threading.RLock()
        self.strict = strict
        self._events = event_publisher or NullEventPublisher()
        for contract in contracts or ():
            self.register(contract)
        logger.info(f"ContractEnforcer initialized with {len(self._contracts)} contract(s), strict={strict}")

    # --- Table maintenance ---

    def register(self, contract: OperationContract) -> OperationContract:
        """Registers a contract, merging with any existing one for the same key."""
        with self._lock:
            existing = self._contracts.get(contract.key)
            if existing is None:
                stored = contract
            else:
                stored = existing.merged_with(contract)
                dropped = existing.required_parameters - contract.required_parameters
                if dropped:
                    logger.warning(
                        f"Re-registration of '{contract.operation_name}' omits {sorted(dropped)}; "
                        "keeping them required."
                    )
            self._contracts[contract.key] = stored
        logger.debug(f"Registered contract {stored.key}: required={sorted(stored.required_parameters)}")
        return stored

    def contract_for(self, operation_name: str, version: Optional[str] = None) -> Optional[OperationContract]:
        """Returns the current contract snapshot, or None if unknown."""
        # dict.get is atomic; contracts themselves are immutable
        return self._contracts.get((operation_name, version))

    def contracts(self) -> List[OperationContract]:
        with self._lock:
            snapshot = list(self._contracts.values())
        return sorted(snapshot, key=lambda c: (c.operation_name, c.version or ""))

    def learn_contract(
        self,
        operation_name: str,
        missing_fields: Iterable[str],
        version: Optional[str] = None,
    ) -> Set[str]:
        """Merges server-reported required fields into the operation's contract.

        Returns:
            The fields that were not already required.
        """
        fields = {f for f in missing_fields if f}
        with self._lock:
            key = (operation_name, version)
            existing = (
                self._contracts.get(key)
                or self._from_base(operation_name, version)
                or OperationContract(operation_name=operation_name, version=version)
            )
            added = fields - existing.required_parameters
            if not added:
                return set()
            self._contracts[key] = existing.with_required(added)

        logger.warning(
            f"Server requires new parameter(s) for '{operation_name}'"
            f"{'@' + version if version else ''}: {sorted(added)}. Contract tightened."
        )
        self._events.publish(ContractTightened(operation=operation_name, version=version, added_fields=sorted_fields(added)))
        return added

    # --- Per-call preparation ---

    def _from_base(self, operation_name: str, version: Optional[str]) -> Optional[OperationContract]:
        """The unversioned contract re-keyed under `version`, or None."""
        if version is None:
            return None
        base = self.contract_for(operation_name, None)
        if base is None:
            return None
        return dataclasses.replace(base, version=version, revision=0)

    def _resolve(self, operation_name: str, version: Optional[str]) -> OperationContract:
        contract = self.contract_for(operation_name, version) or self._from_base(operation_name, version)
        if contract is not None:
            return contract
        if self.strict:
            raise UnknownOperationError(operation_name, version)
        logger.debug(f"No contract for '{operation_name}'; using permissive defaults.")
        return OperationContract(operation_name=operation_name, version=version)

    def prepare(
        self,
        operation_name: str,
        supplied_parameters: Optional[Mapping[str, Any]] = None,
        *,
        version: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        method: Optional[str] = None,
    ) -> Union[OutboundRequest, ContractViolation]:
        """Builds an OutboundRequest, or reports every missing required field.

        A required parameter supplied as None counts as absent. Absent
        parameters with a registered default get the default injected.

        Raises:
            UnknownOperationError: In strict mode, for unknown operations.
        """
        contract = self._resolve(operation_name, version)
        parameters: Dict[str, Any] = dict(supplied_parameters or {})

        missing = []
        for name in contract.required_parameters:
            if parameters.get(name) is not None:
                continue
            if name in contract.parameter_defaults:
                parameters[name] = contract.parameter_defaults[name]
            else:
                missing.append(name)

        if missing:
            logger.debug(f"Contract violation for '{operation_name}': missing {sorted(missing)}")
            return ContractViolation(
                operation_name=operation_name,
                missing_fields=sorted_fields(missing),
                origin=LOCAL,
            )

        return OutboundRequest(
            operation_name=operation_name,
            method=(method or contract.method).upper(),
            url=contract.resolved_path,
            headers=dict(headers or {}),
            parameters=parameters,
            body=body,
            version=version,
        )
