import dataclasses
import json
import logging
from typing import Any, Iterable, Optional, Sequence, Union

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from apirelay.domain.events.api_events import DomainEvent
from apirelay.domain.interfaces.user_interface import UserInterface
from apirelay.domain.models.contract import OperationContract
from apirelay.domain.models.outcome import (
    AuthRejected,
    CallOutcome,
    ContractViolation,
    CredentialRefreshFailed,
    RateLimited,
    Success,
    TransportFailure,
)
from apirelay.domain.models.request import OutboundRequest

logger = logging.getLogger(__name__)

REDACTED_HEADERS = {"authorization", "proxy-authorization", "x-api-key"}


def _pretty(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, sort_keys=True, default=str)
    return "" if value is None else str(value)


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    # --- Outcomes ---

    def display_outcome(self, outcome: CallOutcome) -> None:
        if isinstance(outcome, Success):
            self._display_success(outcome)
        elif isinstance(outcome, ContractViolation):
            self._display_violation(outcome)
        elif isinstance(outcome, RateLimited):
            wait = "unknown" if outcome.retry_after_ms is None else f"{outcome.retry_after_ms / 1000:.2f}s"
            note = f" The previous attempt was rejected with HTTP {outcome.auth_status}." if outcome.auth_status else ""
            self.display_warning(f"Rate limited ({outcome.origin}). Try again after {wait}.{note}")
        elif isinstance(outcome, AuthRejected):
            self.display_error(
                f"Authentication rejected (HTTP {outcome.status_code}) after {outcome.attempts} attempt(s)."
            )
        elif isinstance(outcome, CredentialRefreshFailed):
            self.display_error(f"Could not refresh credentials: {outcome.cause}")
        elif isinstance(outcome, TransportFailure):
            self.display_error(f"Transport failure: {outcome.cause}")
        else:
            self.display_error(f"Unknown outcome: {outcome!r}")

    def _display_success(self, outcome: Success) -> None:
        response = outcome.response
        latency = "" if response.latency_ms is None else f" · {response.latency_ms:.0f} ms"
        body = _pretty(response.body)
        renderable = Syntax(body, "json", word_wrap=True) if isinstance(response.body, (dict, list)) else Text(body)
        self.console.print(Panel(
            renderable,
            title=f"[bold green]HTTP {response.status_code}[/bold green]{latency}",
            border_style="green",
            box=ROUNDED,
            padding=(0, 1),
        ))

    def _display_violation(self, violation: ContractViolation) -> None:
        table = Table(box=SIMPLE, show_header=True, header_style="bold")
        table.add_column("Field")
        table.add_column("Problem")
        for name in violation.missing_fields:
            table.add_row(name, "missing")
        for name in violation.invalid_fields:
            table.add_row(name, "invalid")
        source = "rejected by server" if violation.origin == "server" else "rejected locally"
        self.console.print(Panel(
            table,
            title=f"[bold red]Contract violation[/bold red] · {violation.operation_name} ({source})",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        ))

    # --- Dry runs and inspection ---

    def display_prepared(self, result: Union[OutboundRequest, ContractViolation]) -> None:
        if isinstance(result, ContractViolation):
            self._display_violation(result)
            return
        request = dataclasses.asdict(result)
        request["headers"] = {
            name: ("***" if name.lower() in REDACTED_HEADERS else value)
            for name, value in request["headers"].items()
        }
        self.console.print(Panel(
            Syntax(_pretty(request), "json", word_wrap=True),
            title=f"[bold blue]{result.method} {result.url}[/bold blue]",
            border_style="blue",
            box=ROUNDED,
            padding=(0, 1),
        ))

    def display_contracts(self, contracts: Sequence[OperationContract]) -> None:
        if not contracts:
            self.display_info("No contracts registered.")
            return
        table = Table(title="Operation contracts", box=ROUNDED, header_style="bold cyan")
        table.add_column("Operation")
        table.add_column("Version")
        table.add_column("Endpoint")
        table.add_column("Required")
        table.add_column("Defaults")
        for contract in contracts:
            table.add_row(
                contract.operation_name,
                contract.version or "-",
                f"{contract.method} {contract.resolved_path}",
                ", ".join(sorted(contract.required_parameters)) or "-",
                ", ".join(f"{k}={v}" for k, v in sorted(contract.parameter_defaults.items())) or "-",
            )
        self.console.print(table)

    def display_events(self, events: Iterable[DomainEvent]) -> None:
        table = Table(title="Events", box=SIMPLE, header_style="bold magenta")
        table.add_column("Event")
        table.add_column("Detail")
        for event in events:
            detail = {k: v for k, v in dataclasses.asdict(event).items() if k != "timestamp"}
            table.add_row(type(event).__name__, ", ".join(f"{k}={v}" for k, v in detail.items()))
        self.console.print(table)

    # --- Plain messages ---

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        ))

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1),
        ))

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        logger.warning(f"Display warning: {warning_message}")
        self.console.print(Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1),
        ))
