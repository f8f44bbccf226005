"""Prometheus metrics exposed by the relay."""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest

__all__ = ["CONTENT_TYPE_LATEST", "RelayMetrics"]


class RelayMetrics:
    """Wrapper around the Prometheus registry used by the service."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Create the counters inside the provided registry."""
        self.registry = registry or CollectorRegistry()
        self.processed = Counter(
            "email_service_emails_processed",
            "Total number of emails processed",
            ["sender", "code"],
            registry=self.registry,
        )

    def inc_processed(self, sender: str | None, code: int):
        """Count one request for ``sender`` that ended with HTTP status ``code``."""
        self.processed.labels(sender=sender or "default", code=str(code)).inc()

    def generate_latest(self) -> bytes:
        """Return the latest metrics snapshot in Prometheus text format."""
        return generate_latest(self.registry)
