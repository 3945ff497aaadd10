"""Webhook signature verification: constant-time HMAC for each provider.

Security contract:
- All verifications use hmac.compare_digest() (constant-time, no timing attacks)
- The raw body is hashed exactly as received, never re-serialized
- Missing secret -> verification always fails (fail-closed)
- Only the provider tag and the boolean result are logged
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from typing import Callable, Mapping

from coursepay.config import WebhookSecrets
from coursepay.webhooks.errors import InvalidSignature, MissingCredentials, UnsupportedProvider
from coursepay.webhooks.providers import Provider

logger = logging.getLogger(__name__)

CASHFREE_SIGNATURE_HEADER = "x-webhook-signature"
CASHFREE_TIMESTAMP_HEADER = "x-webhook-timestamp"
RAZORPAY_SIGNATURE_HEADER = "x-razorpay-signature"


def _hmac_sha256(secret: str, message: bytes) -> hmac.HMAC:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256)


def cashfree_signature(body: bytes, timestamp: str, secret: str) -> str:
    """Compute the Cashfree signature: base64(HMAC-SHA256(timestamp + "." + body))."""
    signed_payload = f"{timestamp}.".encode("utf-8") + body
    return base64.b64encode(_hmac_sha256(secret, signed_payload).digest()).decode("ascii")


def razorpay_signature(body: bytes, secret: str) -> str:
    """Compute the Razorpay signature: hex(HMAC-SHA256(body))."""
    return _hmac_sha256(secret, body).hexdigest()


def _check(provider: Provider, expected: str, provided: str) -> None:
    valid = hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
    logger.info("Webhook signature checked: provider=%s valid=%s", provider, valid)
    if not valid:
        raise InvalidSignature()


def verify_cashfree(
    body: bytes,
    timestamp: str | None,
    signature: str | None,
    secret: str,
) -> None:
    """Verify a Cashfree webhook signature.

    Cashfree sends x-webhook-timestamp and x-webhook-signature headers; the
    signature is base64(HMAC-SHA256(timestamp + "." + raw_body)).

    Args:
        body: Raw request body bytes
        timestamp: Value of x-webhook-timestamp header
        signature: Value of x-webhook-signature header
        secret: Cashfree webhook secret

    Raises:
        MissingCredentials: either header is absent
        InvalidSignature: signature mismatch or no secret configured
    """
    if not signature or not timestamp:
        raise MissingCredentials("Missing signature or timestamp")
    if not secret:
        logger.warning("Webhook secret not set, rejecting: provider=%s", Provider.CASHFREE)
        raise InvalidSignature()

    _check(Provider.CASHFREE, cashfree_signature(body, timestamp, secret), signature)


def verify_razorpay(body: bytes, signature: str | None, secret: str) -> None:
    """Verify a Razorpay webhook signature.

    Razorpay sends x-razorpay-signature: lowercase hex HMAC-SHA256 of the raw body.

    Raises:
        MissingCredentials: header is absent
        InvalidSignature: signature mismatch or no secret configured
    """
    if not signature:
        raise MissingCredentials("Missing signature")
    if not secret:
        logger.warning("Webhook secret not set, rejecting: provider=%s", Provider.RAZORPAY)
        raise InvalidSignature()

    _check(Provider.RAZORPAY, razorpay_signature(body, secret), signature)


def _verify_cashfree_headers(body: bytes, headers: Mapping[str, str], secret: str) -> None:
    verify_cashfree(
        body,
        headers.get(CASHFREE_TIMESTAMP_HEADER),
        headers.get(CASHFREE_SIGNATURE_HEADER),
        secret,
    )


def _verify_razorpay_headers(body: bytes, headers: Mapping[str, str], secret: str) -> None:
    verify_razorpay(body, headers.get(RAZORPAY_SIGNATURE_HEADER), secret)


# Provider -> verifier mapping
VERIFIERS: dict[Provider, Callable[[bytes, Mapping[str, str], str], None]] = {
    Provider.CASHFREE: _verify_cashfree_headers,
    Provider.RAZORPAY: _verify_razorpay_headers,
}


def verify_webhook(
    provider: Provider | str,
    body: bytes,
    headers: Mapping[str, str],
    secrets: WebhookSecrets,
) -> None:
    """Verify webhook signature for a given provider.

    Args:
        provider: One of 'cashfree', 'razorpay'
        body: Raw request body
        headers: Request headers (any case)
        secrets: Configured provider secrets

    Raises:
        UnsupportedProvider, MissingCredentials, InvalidSignature
    """
    try:
        verifier = VERIFIERS[Provider(provider)]
    except (KeyError, ValueError):
        logger.warning("Unknown webhook provider: %s", provider)
        raise UnsupportedProvider(provider) from None

    lowered = {k.lower(): v for k, v in headers.items()}
    verifier(body, lowered, secrets.for_provider(provider))
