"""Shared fixtures for the coursepay test suite."""

from __future__ import annotations

import pytest

from coursepay.config import WebhookSecrets


@pytest.fixture()
def secrets() -> WebhookSecrets:
    """Secrets matching the SECRET constants used by the webhook tests."""
    return WebhookSecrets(cashfree="cashfree-test-secret", razorpay="s3cr3t")
