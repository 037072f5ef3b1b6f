"""Interface for the remote API collaborator."""

import abc

from apirelay.domain.models.request import ApiResponse, OutboundRequest


class ApiTransport(abc.ABC):
    """Abstract Base Class for sending prepared requests to the remote API."""

    @abc.abstractmethod
    async def send(self, request: OutboundRequest) -> ApiResponse:
        """Issues the request and returns the server's answer.

        Any HTTP status is returned as an ApiResponse; only network-level
        problems are raised.

        Raises:
            TransportError: On connection failures or timeouts.
        """
        pass

    async def aclose(self) -> None:
        """Releases transport resources. Optional."""
        return None
