"""Authenticator for APIs that use a long-lived key instead of expiring tokens."""

import logging
import time
from typing import Callable, Optional

from apirelay.domain.interfaces.authenticator import Authenticator
from apirelay.domain.models.common import TokenValue
from apirelay.domain.models.credential import Credential

logger = logging.getLogger(__name__)


class StaticTokenAuthenticator(Authenticator):
    """Re-issues the same configured key on every refresh.

    The key has no known expiry. If the server rejects it, the refreshed
    credential is rejected again and the dispatcher surfaces AuthRejected.
    """

    def __init__(self, token: str, token_type: str = "Bearer", clock: Callable[[], float] = time.time):
        if not token:
            raise ValueError("API token not provided.")
        self._token = token
        self._token_type = token_type
        self._clock = clock

    async def refresh(self, previous: Optional[Credential] = None) -> Credential:
        if previous is not None and previous.rejected:
            logger.warning("Static API token was rejected by the server; re-issuing the same token.")
        return Credential(
            token_value=TokenValue(self._token),
            issued_at=self._clock(),
            expires_at=None,
            token_type=self._token_type,
        )
