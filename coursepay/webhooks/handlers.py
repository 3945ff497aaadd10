"""Webhook HTTP handlers: FastAPI route handlers for inbound payment webhooks.

Each handler:
1. Reads raw body (needed for HMAC verification)
2. Verifies provider-specific signature
3. Parses the verified body as JSON
4. Dispatches the event to the payments handler, once
5. Returns 200 {"success": true}, or a terse {"error": ...} body

Security contract:
- Never return stack traces or secret material to the webhook caller
- 400 for missing credentials, bad signatures and malformed JSON
- 500 for handler failures and internal errors (provider retries)
- Log all webhook activity for audit trail (provider tag + state only)
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Mapping

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from coursepay.config import WebhookSecrets
from coursepay.webhooks.dispatcher import WebhookDispatcher, WebhookEvent, parse_event
from coursepay.webhooks.errors import HandlerFailure, InternalError, PayloadTooLarge, WebhookError
from coursepay.webhooks.providers import Provider
from coursepay.webhooks.verification import verify_webhook

logger = logging.getLogger(__name__)

WEBHOOK_PATH_PREFIX = "/api/webhooks"


class DeliveryState(str, Enum):
    """Per-request pipeline states. Rejected, Succeeded and Failed are terminal."""

    RECEIVED = "received"
    VERIFYING = "verifying"
    VERIFIED = "verified"
    PARSING = "parsing"
    PARSED = "parsed"
    DISPATCHING = "dispatching"
    REJECTED = "rejected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class WebhookAudit:
    """Audit log and receive counters for webhook deliveries."""

    def __init__(self) -> None:
        self.counts: dict[str, dict[str, int]] = {}

    def record(
        self,
        provider: str,
        state: DeliveryState,
        event_type: str | None = None,
        error_code: str | None = None,
    ) -> None:
        by_state = self.counts.setdefault(str(provider), {})
        by_state[state.value] = by_state.get(state.value, 0) + 1
        logger.info(
            "WEBHOOK_AUDIT provider=%s state=%s event=%s error=%s",
            provider,
            state.value,
            event_type or "unknown",
            error_code or "-",
        )


def _trace(provider: Provider, state: DeliveryState) -> None:
    logger.debug("Webhook delivery %s: provider=%s", state.value, provider)


def process_delivery(
    provider: Provider,
    body: bytes,
    headers: Mapping[str, str],
    dispatcher: WebhookDispatcher,
    secrets: WebhookSecrets,
) -> WebhookEvent:
    """Run one delivery through verify -> parse -> dispatch.

    Returns:
        The dispatched event

    Raises:
        WebhookError subclasses; HandlerFailure when the handler reports failure
    """
    _trace(provider, DeliveryState.VERIFYING)
    verify_webhook(provider, body, headers, secrets)
    _trace(provider, DeliveryState.VERIFIED)

    _trace(provider, DeliveryState.PARSING)
    event = parse_event(provider, body)
    _trace(provider, DeliveryState.PARSED)

    _trace(provider, DeliveryState.DISPATCHING)
    result = dispatcher.dispatch(event)
    if not result.success:
        raise HandlerFailure(result.error)
    return event


def _error_response(error: WebhookError) -> JSONResponse:
    return JSONResponse({"error": error.message}, status_code=error.status_code)


def register_webhook_routes(
    app: FastAPI,
    dispatcher: WebhookDispatcher,
    secrets: WebhookSecrets,
    max_body_bytes: int | None = None,
) -> WebhookAudit:
    """Register webhook endpoint routes on the FastAPI app.

    Args:
        max_body_bytes: Cap on the body actually read. Streamed uploads
            without a Content-Length never reach the header check.

    Returns:
        The audit recorder backing GET /api/webhooks/status
    """
    audit = WebhookAudit()

    async def _handle_webhook(request: Request, provider: Provider) -> JSONResponse:
        start = time.time()
        audit_event_type: str | None = None

        _trace(provider, DeliveryState.RECEIVED)

        # Read raw body for signature verification
        body = await request.body()

        try:
            if max_body_bytes is not None and len(body) > max_body_bytes:
                raise PayloadTooLarge()
            # Handlers write to the record store; keep them off the event loop
            event = await asyncio.to_thread(
                process_delivery, provider, body, request.headers, dispatcher, secrets
            )
            audit_event_type = event.event_type
        except HandlerFailure as e:
            audit.record(provider, DeliveryState.FAILED, error_code=e.error_code)
            return _error_response(e)
        except WebhookError as e:
            state = DeliveryState.REJECTED if e.status_code < 500 else DeliveryState.FAILED
            logger.warning("Webhook %s: provider=%s error=%s", state.value, provider, e.error_code)
            audit.record(provider, state, error_code=e.error_code)
            return _error_response(e)
        except Exception:
            logger.exception("%s webhook error", provider)
            error = InternalError()
            audit.record(provider, DeliveryState.FAILED, error_code=error.error_code)
            return _error_response(error)

        audit.record(provider, DeliveryState.SUCCEEDED, event_type=audit_event_type)
        elapsed_ms = (time.time() - start) * 1000
        logger.debug("Webhook processed in %.1fms: %s", elapsed_ms, provider)
        return JSONResponse({"success": True})

    @app.post(f"{WEBHOOK_PATH_PREFIX}/cashfree")
    async def cashfree_webhook(request: Request):
        """Receive Cashfree webhooks (signature-verified)."""
        return await _handle_webhook(request, Provider.CASHFREE)

    @app.post(f"{WEBHOOK_PATH_PREFIX}/razorpay")
    async def razorpay_webhook(request: Request):
        """Receive Razorpay webhooks (signature-verified)."""
        return await _handle_webhook(request, Provider.RAZORPAY)

    @app.get(f"{WEBHOOK_PATH_PREFIX}/status")
    async def webhook_status():
        """Webhook receive counts per provider and terminal state."""
        return {"counts": audit.counts}

    logger.info("Webhook routes registered: %s/{cashfree,razorpay}", WEBHOOK_PATH_PREFIX)
    return audit
