"""Request and response structures exchanged with the remote API."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class OutboundRequest:
    """A fully prepared call. Transient: built per call, discarded after the response."""
    operation_name: str
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    body: Optional[Any] = None
    version: Optional[str] = None

    def with_header(self, name: str, value: str) -> "OutboundRequest":
        """Returns a copy with one header added or replaced."""
        headers = dict(self.headers)
        headers[name] = value
        return OutboundRequest(
            operation_name=self.operation_name,
            method=self.method,
            url=self.url,
            headers=headers,
            parameters=dict(self.parameters),
            body=self.body,
            version=self.version,
        )


@dataclass
class ApiResponse:
    """What the remote API collaborator hands back for one call."""
    status_code: int
    body: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    # Parsed from 422 bodies
    missing_fields: Tuple[str, ...] = ()
    invalid_fields: Tuple[str, ...] = ()
    # Parsed from 429 Retry-After
    retry_after_ms: Optional[float] = None
    latency_ms: Optional[float] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_auth_rejection(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_validation_rejection(self) -> bool:
        return self.status_code == 422

    @property
    def is_rate_rejection(self) -> bool:
        return self.status_code == 429
