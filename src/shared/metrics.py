from opentelemetry import metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)

from .config import settings
from .telemetry import service_resource


def setup_metrics(app_name: str) -> None:
    """Configure OpenTelemetry metrics.

    Prometheus is always scraped; console export follows ``OTEL_CONSOLE_EXPORT``.
    """
    readers: list[MetricReader] = [PrometheusMetricReader()]
    if settings.OTEL_CONSOLE_EXPORT:
        readers.append(
            PeriodicExportingMetricReader(
                ConsoleMetricExporter(),
                export_interval_millis=settings.METRICS_EXPORT_INTERVAL_SECONDS * 1000,
            )
        )

    provider = MeterProvider(resource=service_resource(app_name), metric_readers=readers)
    metrics.set_meter_provider(provider)
