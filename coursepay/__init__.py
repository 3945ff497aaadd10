"""coursepay: payment-webhook ingestion for the course platform."""
