"""Operation contract value object."""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Mapping, Optional

from apirelay.domain.models.common import ContractKey


@dataclass(frozen=True)
class OperationContract:
    """The parameters a server operation currently requires.

    Instances are immutable. Tightening a contract produces a new revision
    through `with_required`, never an in-place edit.
    """
    operation_name: str
    required_parameters: FrozenSet[str] = frozenset()
    parameter_defaults: Mapping[str, Any] = field(default_factory=dict)
    version: Optional[str] = None
    method: str = "GET"
    path: Optional[str] = None
    revision: int = 0

    def __post_init__(self) -> None:
        if not self.operation_name:
            raise ValueError("operation_name must be a non-empty string.")
        # Normalise so callers may pass lists/sets/dicts
        object.__setattr__(self, "required_parameters", frozenset(self.required_parameters))
        object.__setattr__(self, "parameter_defaults", MappingProxyType(dict(self.parameter_defaults)))
        object.__setattr__(self, "method", self.method.upper())

    @property
    def key(self) -> ContractKey:
        return (self.operation_name, self.version)

    @property
    def resolved_path(self) -> str:
        return self.path or f"/{self.operation_name}"

    def with_required(self, fields: Iterable[str]) -> "OperationContract":
        """Returns a new revision whose required set also contains `fields`."""
        return OperationContract(
            operation_name=self.operation_name,
            required_parameters=self.required_parameters | frozenset(fields),
            parameter_defaults=dict(self.parameter_defaults),
            version=self.version,
            method=self.method,
            path=self.path,
            revision=self.revision + 1,
        )

    def merged_with(self, other: "OperationContract") -> "OperationContract":
        """Union of both contracts; `other` wins for defaults, method and path."""
        defaults = dict(self.parameter_defaults)
        defaults.update(other.parameter_defaults)
        return OperationContract(
            operation_name=self.operation_name,
            required_parameters=self.required_parameters | other.required_parameters,
            parameter_defaults=defaults,
            version=self.version,
            method=other.method,
            path=other.path or self.path,
            revision=self.revision + 1,
        )
