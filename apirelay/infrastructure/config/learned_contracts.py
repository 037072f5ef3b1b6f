"""Persists contract fields learned from server validation rejections.

The file sits next to the main config (~/.apirelay/learned_contracts.yaml
by default) and uses the same shape as the `contracts:` section:

    getProducts:
      required: [region]
      versions:
        v2: {required: [warehouse]}

It only ever grows. Learned fields are folded into the seed contracts at
startup, so a field the server demanded once fails fast locally on every
later run.
"""

import dataclasses
import logging
import threading
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

import yaml

from apirelay.domain.events.api_events import ContractTightened
from apirelay.domain.exceptions import ConfigurationError
from apirelay.domain.models.common import ContractKey
from apirelay.domain.models.contract import OperationContract

logger = logging.getLogger(__name__)


class LearnedContractStore:
    """YAML file of required fields the server has reported per operation."""

    def __init__(self, path: Path):
        self.path = path
        self._lock = threading.Lock()

    def load(self) -> Dict[ContractKey, FrozenSet[str]]:
        """Reads the learned fields, keyed by (operation, version).

        Raises:
            ConfigurationError: If the file exists but cannot be parsed.
        """
        raw = self._read()
        learned: Dict[ContractKey, FrozenSet[str]] = {}
        for name, entry in raw.items():
            entry = entry or {}
            if not isinstance(entry, dict):
                raise ConfigurationError(f"Learned contract for '{name}' in {self.path} must be a mapping.")
            if entry.get("required"):
                learned[(str(name), None)] = frozenset(str(f) for f in entry["required"])
            for version, version_entry in (entry.get("versions") or {}).items():
                fields = (version_entry or {}).get("required") or []
                if fields:
                    learned[(str(name), str(version))] = frozenset(str(f) for f in fields)
        logger.debug(f"Loaded {len(learned)} learned contract(s) from {self.path}")
        return learned

    def record(self, operation_name: str, version: Optional[str], fields: Iterable[str]) -> None:
        """Adds `fields` to the operation's learned required set and saves the file."""
        fields = set(fields)
        with self._lock:
            raw = self._read()
            entry = raw[operation_name] = raw.get(operation_name) or {}
            if version is not None:
                versions = entry["versions"] = entry.get("versions") or {}
                entry = versions[version] = versions.get(version) or {}
            entry["required"] = sorted(set(entry.get("required") or []) | fields)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                yaml.safe_dump(raw, f, sort_keys=True, default_flow_style=False)
        logger.info(f"Saved learned fields {sorted(fields)} for '{operation_name}' to {self.path}")

    def on_contract_tightened(self, event: ContractTightened) -> None:
        """Event handler; subscribe it for ContractTightened."""
        self.record(event.operation, event.version, event.added_fields)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load learned contracts {self.path}: {e}") from e
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Learned contracts file {self.path} did not contain a mapping.")
        return raw


def apply_learned(
    seeds: Iterable[OperationContract],
    learned: Dict[ContractKey, FrozenSet[str]],
) -> List[OperationContract]:
    """Folds learned required fields into the seed contracts.

    A learned version without its own seed starts from the operation's
    unversioned seed, keeping its method, path, defaults and required set.
    """
    contracts: Dict[ContractKey, OperationContract] = {contract.key: contract for contract in seeds}
    # Unversioned first, so versions derived from the base see its learned fields
    for key in sorted(learned, key=lambda k: (k[0], k[1] is not None, k[1] or "")):
        name, version = key
        existing = contracts.get(key)
        if existing is None:
            base = contracts.get((name, None)) if version is not None else None
            if base is not None:
                existing = dataclasses.replace(base, version=version, revision=0)
            else:
                existing = OperationContract(operation_name=name, version=version)
        added = learned[key] - existing.required_parameters
        contracts[key] = existing.with_required(added) if added else existing
    return list(contracts.values())
