"""Payments business logic consumed by the webhook dispatcher."""

from coursepay.payments.service import PaymentWebhookService
from coursepay.payments.store import InMemoryRecordStore, RecordStore

__all__ = [
    "InMemoryRecordStore",
    "PaymentWebhookService",
    "RecordStore",
]
