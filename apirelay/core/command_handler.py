"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the
work to the dispatcher, the contract enforcer or the retry service, then
hands results to the UserInterface.
"""

import logging
from typing import Any, Dict, Optional

from apirelay.core.services.contract_enforcer import ContractEnforcer
from apirelay.core.services.dispatcher import RequestDispatcher
from apirelay.domain.exceptions import ApiRelayError
from apirelay.domain.interfaces.user_interface import UserInterface
from apirelay.domain.models.outcome import SERVER, CallOutcome, ContractViolation
from apirelay.infrastructure.monitoring.event_log import RecordingEventPublisher
from apirelay.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        contract_enforcer: ContractEnforcer,
        ui: UserInterface,
        dispatcher: Optional[RequestDispatcher] = None,
        retry_service: Optional[ApiRetryService] = None,
        event_recorder: Optional[RecordingEventPublisher] = None,
    ):
        """Initializes the CommandHandler with required services.

        `dispatcher` and `retry_service` may be omitted for commands that
        never contact the remote API (prepare, contracts).
        """
        self.contract_enforcer = contract_enforcer
        self.ui = ui
        self.dispatcher = dispatcher
        self.retry_service = retry_service
        self.event_recorder = event_recorder

    async def handle_call(
        self,
        operation: str,
        parameters: Dict[str, Any],
        version: Optional[str] = None,
        method: Optional[str] = None,
        body: Any = None,
        use_retry: bool = False,
        show_events: bool = False,
    ) -> Optional[CallOutcome]:
        """Handles the 'call' command. Returns the outcome, or None if the call could not start."""
        if self.dispatcher is None:
            self.ui.display_error("No dispatcher configured; cannot contact the remote API.")
            return None
        logger.info(f"Handling 'call' for operation '{operation}' (retry={use_retry})")
        kwargs = {"version": version, "method": method, "body": body}
        try:
            if use_retry and self.retry_service is not None:
                outcome = await self.retry_service.execute_with_retry(operation, parameters, **kwargs)
            else:
                outcome = await self.dispatcher.dispatch(operation, parameters, **kwargs)
        except ApiRelayError as e:
            logger.error(f"Call '{operation}' could not be dispatched: {e}")
            self.ui.display_error(str(e))
            return None

        self.ui.display_outcome(outcome)
        if isinstance(outcome, ContractViolation) and outcome.origin == SERVER and outcome.missing_fields:
            self.ui.display_info(
                f"Contract for '{operation}' updated: {', '.join(outcome.missing_fields)} now required. "
                "Later calls without them fail locally."
            )
        if show_events and self.event_recorder is not None:
            self.ui.display_events(self.event_recorder.events)
        return outcome

    def handle_prepare(
        self,
        operation: str,
        parameters: Dict[str, Any],
        version: Optional[str] = None,
        method: Optional[str] = None,
    ) -> bool:
        """Handles the 'prepare' dry run. Returns True if the request is complete."""
        try:
            result = self.contract_enforcer.prepare(operation, parameters, version=version, method=method)
        except ApiRelayError as e:
            self.ui.display_error(str(e))
            return False
        self.ui.display_prepared(result)
        return not isinstance(result, ContractViolation)

    def handle_list_contracts(self) -> None:
        """Handles the 'contracts' command."""
        self.ui.display_contracts(self.contract_enforcer.contracts())

    async def aclose(self) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.transport.aclose()
            authenticator = self.dispatcher.credential_manager.authenticator
            close = getattr(authenticator, "aclose", None)
            if close is not None:
                await close()
