"""Payment webhook processing: applies provider events to payment records.

Every delivery is recorded in payment_webhooks before it is applied, then
marked processed (or failed, with the error message). Failures are reported
as a DispatchResult instead of raised, so the HTTP layer answers 500 and the
provider retries.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable

from coursepay.payments.store import PAYMENT_WEBHOOKS, PAYMENTS, REFUNDS, RecordStore
from coursepay.webhooks.dispatcher import DispatchResult, WebhookEvent
from coursepay.webhooks.idempotency import DeliveryGuard
from coursepay.webhooks.providers import Provider

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _order_id(payload: dict[str, Any]) -> str:
    order_id = payload.get("order_id")
    if not order_id:
        order = payload.get("order")
        if isinstance(order, dict):
            order_id = order.get("id")
    if not order_id:
        raise ValueError("Webhook payload has no order id")
    return str(order_id)


def _refund_id(payload: dict[str, Any]) -> str:
    refund_id = payload.get("refund_id") or payload.get("id")
    if not refund_id:
        raise ValueError("Webhook payload has no refund id")
    return str(refund_id)


class PaymentWebhookService:
    """Handles verified payment webhooks for every provider."""

    def __init__(self, store: RecordStore, guard: DeliveryGuard | None = None) -> None:
        self._store = store
        self._guard = guard
        # event type -> processor
        self._processors: dict[str, Callable[[dict[str, Any]], None]] = {
            "payment.captured": self._process_payment_success,
            "payment.success": self._process_payment_success,
            "payment.failed": self._process_payment_failed,
            "refund.processed": self._process_refund_success,
        }

    def __call__(self, provider: Provider, event: WebhookEvent) -> DispatchResult:
        return self.handle_webhook(provider, event)

    def handle_webhook(self, provider: Provider, event: WebhookEvent) -> DispatchResult:
        """Record and apply one webhook event.

        Args:
            provider: Provider tag the delivery was verified for
            event: Normalized event

        Returns:
            DispatchResult; failure carries the error message
        """
        event_id = event.event_id
        delivery_key = event.delivery_key
        if self._guard is not None and not self._guard.claim(provider, delivery_key):
            # Already processed; acknowledge so the provider stops retrying
            return DispatchResult.ok()

        webhook: dict[str, Any] | None = None
        try:
            webhook = self._store.insert(
                PAYMENT_WEBHOOKS,
                {
                    "provider": str(provider),
                    "event_type": event.event_type,
                    "event_id": event_id or None,
                    "payload": json.dumps(event.payload),
                    "status": "pending",
                },
            )

            if not isinstance(event.payload, dict):
                raise ValueError("Webhook payload must be a JSON object")

            processor = self._processors.get(event.event_type or "")
            if processor is None:
                logger.info("Unhandled webhook event: %s/%s", provider, event.event_type)
            else:
                processor(event.payload)

            self._store.update(
                PAYMENT_WEBHOOKS,
                {"id": webhook["id"]},
                {"status": "processed", "processed_at": _now()},
            )
            return DispatchResult.ok()
        except Exception as e:
            logger.exception("Webhook processing error: %s/%s", provider, event.event_type)
            if self._guard is not None:
                self._guard.release(provider, delivery_key)
            if webhook is not None:
                self._store.update(
                    PAYMENT_WEBHOOKS,
                    {"id": webhook["id"]},
                    {"status": "failed", "error": str(e)},
                )
            return DispatchResult.failed(str(e) or "Webhook processing failed")

    def _set_payment_status(self, payload: dict[str, Any], status: str) -> None:
        order_id = _order_id(payload)
        changed = self._store.update(
            PAYMENTS,
            {"order_id": order_id},
            {"status": status, "payment_data": json.dumps(payload), "updated_at": _now()},
        )
        if not changed:
            logger.warning("No payment found for order %s", order_id)

    def _process_payment_success(self, payload: dict[str, Any]) -> None:
        self._set_payment_status(payload, "completed")

    def _process_payment_failed(self, payload: dict[str, Any]) -> None:
        self._set_payment_status(payload, "failed")

    def _process_refund_success(self, payload: dict[str, Any]) -> None:
        refund_id = _refund_id(payload)
        now = _now()
        changed = self._store.update(
            REFUNDS,
            {"id": refund_id},
            {
                "status": "succeeded",
                "processed_at": now,
                "refund_data": json.dumps(payload),
                "updated_at": now,
            },
        )
        if not changed:
            logger.warning("No refund found for id %s", refund_id)
