"""
WHIP-style SDP exchange over HTTP.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import SignalingExchangeError

LOG = logging.getLogger(__name__)

SDP_CONTENT_TYPE = "application/sdp"


class WhipExchange:
    """
    POST an offer and return the answer body.

    ``timeout`` is in seconds; ``None`` leaves the request unbounded.  Tests
    pass an :class:`httpx.MockTransport` through ``transport``.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        user_agent: str = "rtcengine/0.1",
    ) -> None:
        self.timeout = timeout
        self.transport = transport
        self.user_agent = user_agent

    async def exchange(self, api_url: str, offer_sdp: str) -> str:
        headers = {"Content-Type": SDP_CONTENT_TYPE, "User-Agent": self.user_agent}
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport,
            follow_redirects=True,
        ) as client:
            try:
                response = await client.post(api_url, content=offer_sdp.encode("utf-8"), headers=headers)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise SignalingExchangeError(api_url, f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise SignalingExchangeError(
                api_url,
                f"server returned {response.status_code}",
                status_code=response.status_code,
            )
        LOG.debug("Exchange with %s ok, answer is %d bytes", api_url, len(response.content))
        return response.text


__all__ = ["SDP_CONTENT_TYPE", "WhipExchange"]
