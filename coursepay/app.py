"""Application factory for the payment webhook service.

Run with: uvicorn --factory coursepay.app:create_app
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from coursepay.config import Settings
from coursepay.payments.service import PaymentWebhookService
from coursepay.payments.store import InMemoryRecordStore, RecordStore
from coursepay.security.middleware import install_security_middleware
from coursepay.webhooks.dispatcher import WebhookDispatcher
from coursepay.webhooks.handlers import register_webhook_routes
from coursepay.webhooks.idempotency import DeliveryGuard

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    store: RecordStore | None = None,
    dispatcher: WebhookDispatcher | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Settings and secrets are loaded once here and passed down explicitly.
    Without a dispatcher, every provider is routed to a PaymentWebhookService
    over `store` (in-memory when omitted).
    """
    settings = settings or Settings()
    logging.getLogger("coursepay").setLevel(settings.log_level.upper())

    if dispatcher is None:
        guard = None
        if settings.redis_url:
            guard = DeliveryGuard(settings.redis_url, ttl_seconds=settings.webhook_dedup_ttl_seconds)
        service = PaymentWebhookService(store or InMemoryRecordStore(), guard=guard)
        dispatcher = WebhookDispatcher.for_all(service)

    app = FastAPI(title="coursepay", description="Payment webhook ingestion")
    app.state.settings = settings
    app.state.audit = register_webhook_routes(
        app,
        dispatcher,
        settings.webhook_secrets(),
        max_body_bytes=settings.webhook_max_body_bytes,
    )

    @app.get("/health", include_in_schema=False)
    async def health():
        return {"status": "ok"}

    install_security_middleware(
        app,
        rate_limit=settings.webhook_rate_limit,
        max_body_bytes=settings.webhook_max_body_bytes,
    )
    logger.info("coursepay app created (dedup=%s)", bool(settings.redis_url))
    return app
