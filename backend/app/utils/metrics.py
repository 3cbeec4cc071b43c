"""Prometheus metrics for the ingestion and query pipelines."""

from prometheus_client import Counter, Histogram

from backend.app.utils.retry import BatchMetrics

# Batch (embedding / vector upsert) metrics
pipeline_batch_latency_ms = Histogram(
    "pipeline_batch_latency_ms",
    "Batch attempt latency in milliseconds",
    ["operation", "outcome"],
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 4000, 8000],
)

pipeline_batch_errors_total = Counter(
    "pipeline_batch_errors_total",
    "Total failed batch attempts",
    ["operation", "reason"],
)

# Pipeline outcome metrics
ingestion_documents_total = Counter(
    "ingestion_documents_total",
    "Documents that left the ingestion pipeline",
    ["outcome"],
)

rag_queries_total = Counter(
    "rag_queries_total",
    "Answered questions by retrieval outcome",
    ["outcome"],
)


class PipelineMetrics(BatchMetrics):
    """No-op pipeline metrics; subclass to record."""

    def inc_ingestion(self, outcome: str) -> None:
        pass

    def inc_query(self, outcome: str) -> None:
        pass


class PrometheusPipelineMetrics(PipelineMetrics):
    """Prometheus-based pipeline metrics implementation."""

    def record_batch_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record batch attempt latency."""
        pipeline_batch_latency_ms.labels(operation=operation, outcome=outcome).observe(latency_ms)

    def inc_batch_error(self, operation: str, reason: str) -> None:
        """Increment batch error counter."""
        pipeline_batch_errors_total.labels(operation=operation, reason=reason).inc()

    def inc_ingestion(self, outcome: str) -> None:
        """Count a finished ingestion (ready, error, cancelled)."""
        ingestion_documents_total.labels(outcome=outcome).inc()

    def inc_query(self, outcome: str) -> None:
        """Count a query by retrieval outcome."""
        rag_queries_total.labels(outcome=outcome).inc()
