"""Payment provider tags."""

from __future__ import annotations

from enum import Enum


class Provider(str, Enum):
    CASHFREE = "cashfree"
    RAZORPAY = "razorpay"

    def __str__(self) -> str:
        return self.value
