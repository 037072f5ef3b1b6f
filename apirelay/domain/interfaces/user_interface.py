"""Interface for presenting results to the user."""

import abc
from typing import Any, Iterable, Sequence, Union

from apirelay.domain.events.api_events import DomainEvent
from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.outcome import CallOutcome, ContractViolation
from apirelay.domain.models.request import OutboundRequest


class UserInterface(abc.ABC):
    """Abstract Base Class for user-facing output."""

    @abc.abstractmethod
    def display_outcome(self, outcome: CallOutcome) -> None:
        """Shows the terminal outcome of a dispatched call."""
        pass

    @abc.abstractmethod
    def display_prepared(self, result: Union[OutboundRequest, ContractViolation]) -> None:
        """Shows the result of a dry-run `prepare`."""
        pass

    @abc.abstractmethod
    def display_contracts(self, contracts: Sequence[OperationContract]) -> None:
        pass

    @abc.abstractmethod
    def display_events(self, events: Iterable[DomainEvent]) -> None:
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        pass
