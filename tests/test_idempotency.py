"""Tests for webhook delivery dedup (DeliveryGuard)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import redis

from coursepay.webhooks.idempotency import DeliveryGuard


class TestDeliveryGuard:
    """Redis SET NX claims for (provider, event_id)."""

    def test_new_event_is_claimed(self):
        mock_r = MagicMock()
        mock_r.set.return_value = True  # SET NX succeeded (new key)
        guard = DeliveryGuard(client=mock_r)

        assert guard.claim("razorpay", "evt_123") is True
        mock_r.set.assert_called_once_with(
            "webhook:seen:razorpay:evt_123", "1", nx=True, ex=86400
        )

    def test_seen_event_is_duplicate(self):
        mock_r = MagicMock()
        mock_r.set.return_value = None  # SET NX failed (key exists)
        guard = DeliveryGuard(client=mock_r)

        assert guard.claim("razorpay", "evt_123") is False

    def test_redis_down_allows_through(self):
        """Redis failure -> fail open (process the delivery)."""
        mock_r = MagicMock()
        mock_r.set.side_effect = redis.ConnectionError("Connection refused")
        guard = DeliveryGuard(client=mock_r)

        assert guard.claim("cashfree", "evt_1") is True

    def test_empty_event_id_never_deduplicated(self):
        mock_r = MagicMock()
        guard = DeliveryGuard(client=mock_r)

        assert guard.claim("cashfree", "") is True
        mock_r.set.assert_not_called()

    def test_custom_ttl(self):
        mock_r = MagicMock()
        guard = DeliveryGuard(client=mock_r, ttl_seconds=60)
        guard.claim("cashfree", "evt_1")
        assert mock_r.set.call_args[1]["ex"] == 60

    def test_release_deletes_key(self):
        mock_r = MagicMock()
        guard = DeliveryGuard(client=mock_r)

        guard.release("razorpay", "evt_123")
        mock_r.delete.assert_called_once_with("webhook:seen:razorpay:evt_123")

    def test_release_tolerates_redis_errors(self):
        mock_r = MagicMock()
        mock_r.delete.side_effect = redis.TimeoutError()
        DeliveryGuard(client=mock_r).release("razorpay", "evt_123")

    @patch("coursepay.webhooks.idempotency.redis.from_url")
    def test_client_created_lazily_from_url(self, mock_from_url):
        guard = DeliveryGuard("redis://localhost:6379/0")
        mock_from_url.assert_not_called()

        guard.claim("razorpay", "evt_1")
        mock_from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)

    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            DeliveryGuard()
