"""
Async webhook client.

Posts a WebhookBody as multipart form data:

    payload_json  the JSON body
    file          image.jpeg (image/jpeg), only when a screenshot is attached

Each call is a single attempt. Retrying is the delivery service's job, so
every failure is raised as a DeliveryError subclass carrying its
FailureCategory and status code.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from drop_relay import __version__
from drop_relay.delivery.failures import FailureCategory
from drop_relay.errors import (
    ClientResponseError,
    DeliveryError,
    DeliveryTimeoutError,
    NetworkError,
    RateLimitError,
    ServerError,
)
from drop_relay.routing.webhook import SCREENSHOT_FILENAME, WebhookBody

logger = logging.getLogger(__name__)


@dataclass
class WebhookClientConfig:
    """Configuration for WebhookClient."""

    url: str = ""
    timeout_seconds: float = 30.0
    user_agent: str = f"drop-relay/{__version__}"


@dataclass
class WebhookResponse:
    """
    Parsed response from the webhook endpoint.

    The body is optional JSON; notice and rank_update are messages meant for
    the player, processed means the service already handled the submission.
    """

    status: int
    notice: Optional[str] = None
    rank_update: Optional[str] = None
    processed: bool = False
    submission_id: Optional[str] = None

    @classmethod
    def from_body(cls, status: int, text: str) -> "WebhookResponse":
        data: Dict[str, Any] = {}
        if text and text.strip().startswith("{"):
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                logger.debug(f"Unparseable webhook response body: {e}")
        return cls(
            status=status,
            notice=data.get("notice") or None,
            rank_update=data.get("rank_update") or None,
            processed=bool(data.get("processed", False)),
            submission_id=data.get("submission_id"),
        )

    @property
    def messages(self) -> list:
        return [m for m in (self.notice, self.rank_update) if m]


class WebhookClient:
    """
    aiohttp client for the webhook endpoint.

    Usage:
        async with WebhookClient(WebhookClientConfig(url=url)) as client:
            response = await client.send(payload, screenshot)
    """

    def __init__(
        self,
        config: Optional[WebhookClientConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._config = config or WebhookClientConfig()
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=self._config.timeout_seconds)

    @property
    def url(self) -> str:
        return self._config.url

    async def __aenter__(self) -> "WebhookClient":
        if self._session is None:
            self._session = self._create_session()
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    def _create_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=self._timeout,
            headers={"User-Agent": self._config.user_agent},
        )

    def _build_form(self, payload: WebhookBody, screenshot: Optional[bytes]) -> aiohttp.FormData:
        form = aiohttp.FormData()
        form.add_field("payload_json", payload.to_json(), content_type="application/json")
        if screenshot:
            form.add_field(
                "file",
                screenshot,
                filename=SCREENSHOT_FILENAME,
                content_type="image/jpeg",
            )
        return form

    async def send(
        self,
        payload: WebhookBody,
        screenshot: Optional[bytes] = None,
    ) -> WebhookResponse:
        """
        Post one payload.

        Args:
            payload: Webhook body
            screenshot: Optional JPEG bytes

        Returns:
            Parsed WebhookResponse for a 2xx

        Raises:
            RateLimitError: On 429
            ClientResponseError: On other 4xx
            ServerError: On 5xx
            DeliveryTimeoutError: When the client timeout elapses
            NetworkError: On connection errors
            asyncio.CancelledError: When task is cancelled (re-raised)
        """
        if not self._config.url:
            raise DeliveryError("No webhook URL configured", category=FailureCategory.CLIENT_ERROR)

        if self._session is None:
            self._session = self._create_session()
            self._owns_session = True

        form = self._build_form(payload, screenshot)

        try:
            async with self._session.post(self._config.url, data=form) as response:
                text = await response.text()

                if response.status == 429:
                    raise RateLimitError(
                        "Rate limit exceeded",
                        status_code=429,
                        category=FailureCategory.RATE_LIMITED,
                    )

                # 4xx client errors (except 429) - don't retry
                if 400 <= response.status < 500:
                    raise ClientResponseError(
                        f"HTTP {response.status}: {text[:200]}",
                        status_code=response.status,
                        category=FailureCategory.CLIENT_ERROR,
                    )

                # 5xx server errors - retry
                if response.status >= 500:
                    raise ServerError(
                        f"HTTP {response.status}: {text[:200]}",
                        status_code=response.status,
                        category=FailureCategory.SERVER_ERROR,
                    )

                return WebhookResponse.from_body(response.status, text)

        except asyncio.CancelledError:
            logger.debug("Webhook request cancelled")
            raise

        except asyncio.TimeoutError as e:
            raise DeliveryTimeoutError(
                f"Request timed out after {self._config.timeout_seconds}s",
                category=FailureCategory.TIMEOUT,
            ) from e

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error: {e}",
                category=FailureCategory.NETWORK_ERROR,
            ) from e
