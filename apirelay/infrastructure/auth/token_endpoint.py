"""OAuth2-style token endpoint authenticator using httpx.

Uses the `refresh_token` grant when the previous credential carries a
refresh token, and falls back to `client_credentials` otherwise (or when
the refresh token is refused).
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from apirelay.domain.exceptions import AuthRefreshFailed
from apirelay.domain.interfaces.authenticator import Authenticator
from apirelay.domain.models.common import TokenValue
from apirelay.domain.models.credential import Credential

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class TokenEndpointAuthenticator(Authenticator):
    """Obtains bearer tokens from a token endpoint."""

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        scope: Optional[str] = None,
        timeout_s: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the authenticator.

        Args:
            token_url: Absolute URL of the token endpoint.
            client_id: OAuth2 client id.
            client_secret: OAuth2 client secret.
            scope: Optional space-separated scope string.
            timeout_s: Timeout for the token request.
            client: Pre-built httpx client (e.g. with a MockTransport in tests).
            clock: Returns seconds since the epoch; used for issued_at/expires_at.
        """
        if not token_url or not client_id or not client_secret:
            raise ValueError("token_url, client_id and client_secret are required.")
        self.token_url = token_url
        self.client_id = client_id
        self._client_secret = client_secret
        self.scope = scope
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._clock = clock
        logger.info(f"TokenEndpointAuthenticator initialized for {token_url} (client_id={client_id})")

    def _client_credentials_form(self) -> Dict[str, str]:
        form = {
            "grant_type": "client_credentials",
            "client_id": self.client_id,
            "client_secret": self._client_secret,
        }
        if self.scope:
            form["scope"] = self.scope
        return form

    def _refresh_token_form(self, refresh_token: str) -> Dict[str, str]:
        return {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self._client_secret,
        }

    async def refresh(self, previous: Optional[Credential] = None) -> Credential:
        if previous is not None and previous.refresh_token:
            try:
                return await self._request_token(self._refresh_token_form(previous.refresh_token))
            except AuthRefreshFailed as e:
                logger.warning(f"Refresh token grant failed ({e}); falling back to client credentials.")
        return await self._request_token(self._client_credentials_form())

    async def _request_token(self, form: Dict[str, str]) -> Credential:
        grant = form["grant_type"]
        logger.debug(f"Requesting token with grant_type={grant}")
        response = await self._client.post(self.token_url, data=form, headers={"Accept": "application/json"})
        if response.status_code != 200:
            raise AuthRefreshFailed(f"Token endpoint returned {response.status_code} for grant_type={grant}")
        try:
            payload = response.json()
        except ValueError as e:
            raise AuthRefreshFailed("Token endpoint returned a non-JSON body") from e
        return self._parse_token(payload)

    def _parse_token(self, payload: Dict[str, Any]) -> Credential:
        token = payload.get("access_token")
        if not token:
            raise AuthRefreshFailed("Token endpoint response has no access_token")
        issued_at = self._clock()
        expires_in = payload.get("expires_in")
        expires_at = None
        if expires_in is not None:
            try:
                expires_at = issued_at + float(expires_in)
            except (TypeError, ValueError):
                logger.warning(f"Ignoring malformed expires_in: {expires_in!r}")
        return Credential(
            token_value=TokenValue(str(token)),
            issued_at=issued_at,
            expires_at=expires_at,
            token_type=str(payload.get("token_type") or "Bearer").capitalize(),
            refresh_token=payload.get("refresh_token"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
