"""Concrete implementation of the ApiTransport interface using httpx.

Translates OutboundRequests into HTTP calls and HTTP responses into
ApiResponses. Every status code is returned to the dispatcher; only
connection problems and timeouts are raised, as TransportError.
"""

import logging
import time
from typing import Any, Dict, Optional

import httpx

from apirelay.domain.exceptions import TransportError
from apirelay.domain.interfaces.transport import ApiTransport
from apirelay.domain.models.request import ApiResponse, OutboundRequest
from apirelay.infrastructure.http.response_parsing import extract_field_errors, parse_retry_after

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
QUERY_METHODS = {"GET", "DELETE", "HEAD", "OPTIONS"}


class HttpxTransport(ApiTransport):
    """Sends requests through a shared httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str,
        timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        default_headers: Optional[Dict[str, str]] = None,
    ):
        """Initializes the transport.

        Args:
            base_url: Root URL of the remote API; request paths are relative to it.
            timeout_s: Per-request timeout handed to httpx.
            client: Pre-built client (e.g. with a MockTransport in tests).
            default_headers: Headers sent with every request.
        """
        if client is None and not base_url:
            raise ValueError("base_url is required when no httpx client is supplied.")
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_s, headers=default_headers or {}
        )
        logger.info(f"HttpxTransport initialized for {base_url or self._client.base_url}")

    def _build_kwargs(self, request: OutboundRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {"headers": request.headers}
        if request.method in QUERY_METHODS:
            kwargs["params"] = request.parameters
        elif request.body is not None:
            kwargs["params"] = request.parameters
            kwargs["json"] = request.body
        else:
            kwargs["json"] = request.parameters
        return kwargs

    async def send(self, request: OutboundRequest) -> ApiResponse:
        logger.debug(f"Sending {request.method} {request.url} for '{request.operation_name}'")
        start_time = time.perf_counter()
        try:
            response = await self._client.request(request.method, request.url, **self._build_kwargs(request))
        except httpx.TimeoutException as e:
            raise TransportError(f"Timed out calling {request.method} {request.url}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error calling {request.method} {request.url}: {e}") from e
        latency_ms = (time.perf_counter() - start_time) * 1000
        return self._to_api_response(response, latency_ms)

    def _to_api_response(self, response: httpx.Response, latency_ms: float) -> ApiResponse:
        body = self._decode_body(response)
        api_response = ApiResponse(
            status_code=response.status_code,
            body=body,
            headers=dict(response.headers),
            latency_ms=latency_ms,
        )
        if response.status_code == 422:
            api_response.missing_fields, api_response.invalid_fields = extract_field_errors(body)
        elif response.status_code == 429:
            api_response.retry_after_ms = parse_retry_after(response.headers.get("Retry-After"))
        logger.debug(f"Response {response.status_code} in {latency_ms:.1f} ms")
        return api_response

    @staticmethod
    def _decode_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                logger.warning("Response declared JSON but could not be decoded; returning text.")
        return response.text

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
