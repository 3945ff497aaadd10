"""Webhook pipeline errors.

Each error carries the HTTP status and the terse public message returned to
the payment provider. Messages never include secrets or signature values.
"""

from __future__ import annotations


class WebhookError(Exception):
    """Base webhook pipeline error."""

    status_code: int = 500
    error_code: str = "WEBHOOK_ERROR"
    message: str = "Webhook processing failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(error_code={self.error_code!r}, message={self.message!r})"


class MissingCredentials(WebhookError):
    """Signature (or timestamp) header absent."""

    status_code = 400
    error_code = "MISSING_CREDENTIALS"
    message = "Missing signature"


class InvalidSignature(WebhookError):
    """Computed signature does not match the provided one."""

    status_code = 400
    error_code = "INVALID_SIGNATURE"
    message = "Invalid signature"


class MalformedPayload(WebhookError):
    """Verified body is not valid JSON."""

    status_code = 400
    error_code = "MALFORMED_PAYLOAD"
    message = "Invalid JSON payload"


class UnsupportedProvider(WebhookError):
    """No verifier or handler is wired for the provider tag."""

    error_code = "UNSUPPORTED_PROVIDER"

    def __init__(self, provider: object) -> None:
        self.provider = provider
        super().__init__()


class HandlerFailure(WebhookError):
    """Downstream handler reported a failure."""

    error_code = "HANDLER_FAILURE"


class InternalError(WebhookError):
    """Unexpected exception anywhere in the pipeline."""

    error_code = "INTERNAL_ERROR"


class PayloadTooLarge(WebhookError):
    """Body read from the stream exceeds the configured limit."""

    status_code = 413
    error_code = "PAYLOAD_TOO_LARGE"
    message = "Payload too large"
