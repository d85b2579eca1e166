"""Prometheus metrics for ingestion, provisioning and conversation turns."""

from prometheus_client import Counter, Histogram

document_notifications_total = Counter(
    "document_notifications_total",
    "Storage notifications processed, by outcome",
    ["outcome"],
)

document_stage_latency_ms = Histogram(
    "document_stage_latency_ms",
    "Document lifecycle stage latency in milliseconds",
    ["stage", "outcome"],
    buckets=[10, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

index_provision_attempts_total = Counter(
    "index_provision_attempts_total",
    "Vector index provisioning attempts, by result",
    ["result"],
)

session_turns_total = Counter(
    "session_turns_total",
    "Conversation turns persisted, by role",
    ["role"],
)

rag_query_latency_ms = Histogram(
    "rag_query_latency_ms",
    "Retrieve-and-generate latency in milliseconds",
    ["outcome"],
    buckets=[100, 250, 500, 1000, 2000, 4000, 8000, 16000, 32000],
)


class PipelineMetrics:
    """Interface for pipeline metrics (no-op by default)."""

    def inc_notification(self, outcome: str) -> None:
        """Count a processed storage notification."""
        pass

    def record_stage_latency(self, stage: str, outcome: str, latency_ms: float) -> None:
        """Record latency of one lifecycle stage."""
        pass

    def inc_provision_attempt(self, result: str) -> None:
        """Count an index provisioning attempt."""
        pass

    def inc_turn(self, role: str) -> None:
        """Count a persisted turn."""
        pass

    def record_query_latency(self, outcome: str, latency_ms: float) -> None:
        """Record retrieve-and-generate latency."""
        pass


class PrometheusPipelineMetrics(PipelineMetrics):
    """Prometheus-based pipeline metrics implementation."""

    def inc_notification(self, outcome: str) -> None:
        document_notifications_total.labels(outcome=outcome).inc()

    def record_stage_latency(self, stage: str, outcome: str, latency_ms: float) -> None:
        document_stage_latency_ms.labels(stage=stage, outcome=outcome).observe(latency_ms)

    def inc_provision_attempt(self, result: str) -> None:
        index_provision_attempts_total.labels(result=result).inc()

    def inc_turn(self, role: str) -> None:
        session_turns_total.labels(role=role).inc()

    def record_query_latency(self, outcome: str, latency_ms: float) -> None:
        rag_query_latency_ms.labels(outcome=outcome).observe(latency_ms)
