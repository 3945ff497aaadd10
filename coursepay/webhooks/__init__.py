"""Inbound payment webhooks.

Receives webhooks from Cashfree and Razorpay.
Each delivery is signature-verified, parsed, and dispatched exactly once.
"""
