"""Webhook event dispatcher: routes verified payloads to payment handlers.

Parses the verified raw body into a normalized WebhookEvent and hands it to
the handler registered for the provider tag.

Contract:
- parse_event() is only called on bodies that passed signature verification
- Only syntactic JSON parsing happens here; the handler validates semantics
- The handler is called exactly once per delivery, never retried
- Provider retries are the only redelivery mechanism
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from coursepay.webhooks.errors import MalformedPayload, UnsupportedProvider
from coursepay.webhooks.providers import Provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookEvent:
    """Normalized webhook event ready for dispatch."""

    provider: Provider
    payload: Any

    @property
    def event_type(self) -> str | None:
        if isinstance(self.payload, dict):
            return self.payload.get("event")
        return None

    @property
    def event_id(self) -> str:
        if not isinstance(self.payload, dict):
            return ""
        value = self.payload.get("event_id") or self.payload.get("id")
        return str(value) if value else ""

    @property
    def delivery_key(self) -> str:
        """Dedup identity: event type plus id.

        ``id`` is usually the payment or refund id, so different events for
        the same entity must not share a key. Empty when there is no id.
        """
        if not self.event_id:
            return ""
        return f"{self.event_type or 'unknown'}:{self.event_id}"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome reported by a webhook handler."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> DispatchResult:
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> DispatchResult:
        return cls(success=False, error=error)


# (provider, event) -> result; owned by the payments module
WebhookHandler = Callable[[Provider, WebhookEvent], DispatchResult]


def parse_event(provider: Provider, body: bytes) -> WebhookEvent:
    """Parse a verified raw body into a normalized WebhookEvent.

    Args:
        provider: Provider the body was verified for
        body: Raw request body bytes

    Returns:
        WebhookEvent holding the parsed JSON value

    Raises:
        MalformedPayload: body is not valid UTF-8 JSON
    """
    try:
        payload = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise MalformedPayload() from None
    return WebhookEvent(provider=Provider(provider), payload=payload)


class WebhookDispatcher:
    """Routes normalized events to handlers by provider tag.

    Adding a provider means adding an entry to the handler table; the
    dispatch path itself does not change.
    """

    def __init__(self, handlers: Mapping[Provider, WebhookHandler]) -> None:
        self._handlers: dict[Provider, WebhookHandler] = dict(handlers)

    @classmethod
    def for_all(cls, handler: WebhookHandler) -> WebhookDispatcher:
        """Route every known provider to the same handler."""
        return cls({provider: handler for provider in Provider})

    @property
    def providers(self) -> frozenset[Provider]:
        return frozenset(self._handlers)

    def dispatch(self, event: WebhookEvent) -> DispatchResult:
        """Invoke the provider's handler once and return its result.

        Raises:
            UnsupportedProvider: no handler wired for event.provider
        """
        handler = self._handlers.get(event.provider)
        if handler is None:
            logger.error("No webhook handler for provider: %s", event.provider)
            raise UnsupportedProvider(event.provider)

        logger.info(
            "Dispatching webhook event: %s/%s",
            event.provider,
            event.event_type or "unknown",
        )
        result = handler(event.provider, event)
        if not result.success:
            logger.warning(
                "Webhook handler failed: %s/%s error=%s",
                event.provider,
                event.event_type or "unknown",
                result.error,
            )
        return result
