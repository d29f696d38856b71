# watchsync/integrations/platforms/rest.py
import json
import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from watchsync.core.exceptions import (
    AlreadyConvergedError,
    PermanentChannelError,
    TransientChannelError,
)
from watchsync.integrations.base import ChannelAdapter, ChannelStatusPolicy

logger = logging.getLogger(__name__)


def _contains_any(text: str, markers: Iterable[str]) -> Optional[str]:
    lowered = (text or "").lower()
    for marker in markers:
        if marker.lower() in lowered:
            return marker
    return None


class HttpChannelAdapter(ChannelAdapter):
    """
    Base for channels reached over HTTP.

    Subclasses get `_make_request`, which turns every transport or HTTP
    failure into one of the three channel error classes:

    - timeouts, network errors, 429 and 5xx -> TransientChannelError
    - a response body matching `already_converged_markers` -> AlreadyConvergedError
    - a response body matching `transient_markers` -> TransientChannelError
    - any other non-2xx -> PermanentChannelError
    """

    already_converged_markers: tuple = ()
    transient_markers: tuple = ()
    transient_status_codes: tuple = (408, 425, 429)

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        status_policy: Optional[ChannelStatusPolicy] = None,
    ):
        super().__init__(status_policy)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client
        logger.info(f"Initializing {type(self).__name__} for {self.base_url or '<unset>'}")

    def _get_headers(self) -> Dict[str, str]:
        """Get headers for API requests"""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Any] = None,
        params: Optional[Dict] = None,
        content: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Make a request to the channel API

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            endpoint: API endpoint (without base URL)
            data: JSON payload
            params: Query parameters
            content: Raw body, used instead of `data` for XML calls
            headers: Replaces the default headers

        Returns:
            httpx.Response: the successful response

        Raises:
            TransientChannelError, PermanentChannelError, AlreadyConvergedError
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url
        headers = headers if headers is not None else self._get_headers()

        logger.debug(f"Making {method} request to {url}")
        if params:
            logger.debug(f"Params: {params}")
        if data is not None:
            logger.debug(f"Data: {json.dumps(data, default=str)[:500]}...")

        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=headers, json=data, params=params, content=content,
                    timeout=self.timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method, url, headers=headers, json=data, params=params, content=content,
                    )
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout calling {self.channel_id}: {e}")
            raise TransientChannelError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            logger.warning(f"Network error calling {self.channel_id}: {e}")
            raise TransientChannelError(f"Network error: {e}") from e

        if response.is_success:
            self._raise_for_body(response.text)
            return response

        self._raise_for_status(response)
        return response

    def _raise_for_body(self, text: str) -> None:
        """Some channels report failures with a 200; subclasses that do override this."""
        pass

    def _raise_for_status(self, response: httpx.Response) -> None:
        text = response.text
        status = response.status_code

        marker = _contains_any(text, self.already_converged_markers)
        if marker:
            raise AlreadyConvergedError(marker)

        if status in self.transient_status_codes or status >= 500:
            logger.warning(f"{self.channel_id} API transient error {status}: {text[:300]}")
            raise TransientChannelError(f"HTTP {status}: {text[:300]}")

        marker = _contains_any(text, self.transient_markers)
        if marker:
            logger.warning(f"{self.channel_id} API transient error {status}: {marker}")
            raise TransientChannelError(f"HTTP {status}: {marker}")

        logger.error(f"{self.channel_id} API error {status}: {text[:500]}")
        raise PermanentChannelError(f"HTTP {status}: {text[:500]}")

    @staticmethod
    def _json(response: httpx.Response) -> Dict:
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise PermanentChannelError(f"Response was not JSON: {response.text[:200]}") from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
