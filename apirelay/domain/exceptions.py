"""Exception taxonomy of the request layer.

Failures the dispatcher reaches are returned as CallOutcome values; these
exceptions are raised by the collaborators and services underneath it.
"""

from typing import Optional


class ApiRelayError(Exception):
    """Base class for all apirelay errors."""


class AuthRefreshFailed(ApiRelayError):
    """The authentication collaborator could not issue a new credential."""


class TransportError(ApiRelayError):
    """Network-level failure or timeout while talking to the remote API."""


class UnexpectedStatusError(TransportError):
    """The remote API answered with a status the layer does not classify."""

    def __init__(self, status_code: int, body: Optional[object] = None):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Unexpected HTTP status {status_code} from remote API")


class UnknownOperationError(ApiRelayError):
    """No contract is registered for the operation and the enforcer is strict."""

    def __init__(self, operation_name: str, version: Optional[str] = None):
        self.operation_name = operation_name
        self.version = version
        label = f"{operation_name}@{version}" if version else operation_name
        super().__init__(f"No contract registered for operation '{label}'")


class ConfigurationError(ApiRelayError):
    """Configuration values are missing or malformed."""
