"""HTTP client for the ``webhook`` action."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class WebhookResponse(BaseModel):
    status: int
    body: Any = None


class WebhookCaller:
    """Send one JSON request per webhook step.

    Non-2xx responses are returned, not raised; transport errors propagate
    so the queue can retry.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def call(
        self,
        url: str,
        method: str = "POST",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
    ) -> WebhookResponse:
        method = method.upper()
        request_headers = {"Content-Type": "application/json", **(headers or {})}
        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            response = await client.request(
                method,
                url,
                headers=request_headers,
                content=body if method != "GET" else None,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        logger.info(f"Webhook {method} {url} -> {response.status_code}")
        return WebhookResponse(status=response.status_code, body=data)
