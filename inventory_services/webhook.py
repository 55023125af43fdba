"""
Webhook transport -- the outbound HTTP seam of the EventPublisher.

The dispatcher builds a fully signed ``WebhookRequest`` and hands it to a
``WebhookTransport``.  The transport only moves bytes: it never re-serializes
the body (the signature covers those exact bytes) and it reports every
failure as ``WebhookDeliveryError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import httpx

from inventory_kernel.exceptions import WebhookDeliveryError
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.webhook")


@dataclass(frozen=True)
class WebhookRequest:
    url: str
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


@runtime_checkable
class WebhookTransport(Protocol):
    """Delivers one request; returns the HTTP status or raises WebhookDeliveryError."""

    def send(self, request: WebhookRequest) -> int:
        ...


class HttpxWebhookTransport:
    """
    Synchronous httpx transport.

    Contract:
        POSTs ``request.body`` verbatim.  Any 2xx status is success; anything
        else, any transport-level error and any unusable URL raise
        WebhookDeliveryError.

    Non-goals:
        - Retry or backoff.  A failed delivery is reported once.
    """

    def __init__(self, timeout_seconds: float = 10.0, client: httpx.Client | None = None):
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def send(self, request: WebhookRequest) -> int:
        try:
            response = self._client.post(
                request.url,
                content=request.body,
                headers=request.headers,
            )
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as exc:
            # InvalidURL and UnicodeError (over-long host labels) sit outside HTTPError
            raise WebhookDeliveryError(request.url, f"{type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise WebhookDeliveryError(
                request.url,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        logger.debug(
            "webhook_posted",
            extra={"url": request.url, "status_code": response.status_code},
        )
        return response.status_code

    def close(self) -> None:
        if self._owns_client:
            self._client.close()
