"""Tests for the demo application and the shared logging/metrics setup."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from main import app, run
from shared.config import settings
from shared.logging import setup_logging
from shared.metrics import setup_metrics
from shared.telemetry import service_resource
from tlsconf import __version__
from tlsconf.domain.states import TLSRole
from tlsconf.services.registry import ConfigRegistry

client = TestClient(app)


def test_setup_logging():
    """Test that setup_logging configures OTel provider."""
    with patch("shared.logging.set_logger_provider") as mock_set_provider, patch(
        "shared.logging.LoggerProvider"
    ) as mock_provider_cls, patch("shared.logging.BatchLogRecordProcessor"), patch(
        "shared.logging.ConsoleLogRecordExporter"
    ), patch("shared.logging.LoggingHandler"), patch("shared.logging.logging.getLogger"):
        setup_logging()

        mock_provider_cls.assert_called_once()
        mock_set_provider.assert_called_once()


def test_setup_metrics():
    """Test that setup_metrics configures OTel meter provider."""
    with patch("shared.metrics.MeterProvider") as mock_provider_cls, patch(
        "shared.metrics.metrics.set_meter_provider"
    ) as mock_set_provider, patch("shared.metrics.PeriodicExportingMetricReader"), patch(
        "shared.metrics.ConsoleMetricExporter"
    ), patch("shared.metrics.PrometheusMetricReader"):
        setup_metrics("test-app")

        mock_provider_cls.assert_called_once()
        mock_set_provider.assert_called_once()


def test_service_resource_from_settings():
    """Test that telemetry is labelled with the configured service and environment."""
    with patch.object(settings, "APP_ENV", "staging"):
        attributes = service_resource().attributes

    assert attributes["service.name"] == settings.APP_NAME
    assert attributes["service.version"] == __version__
    assert attributes["deployment.environment"] == "staging"
    assert service_resource("other-app").attributes["service.name"] == "other-app"


def test_setup_logging_without_console_export():
    """Test that console log export can be switched off."""
    with patch.object(settings, "OTEL_CONSOLE_EXPORT", False), patch(
        "shared.logging.set_logger_provider"
    ), patch("shared.logging.LoggerProvider") as mock_provider_cls, patch(
        "shared.logging.BatchLogRecordProcessor"
    ) as mock_processor_cls, patch("shared.logging.LoggingHandler"), patch(
        "shared.logging.logging.getLogger"
    ):
        setup_logging()

    mock_processor_cls.assert_not_called()
    resource = mock_provider_cls.call_args.kwargs["resource"]
    assert resource.attributes["service.name"] == settings.APP_NAME


def test_setup_metrics_without_console_export():
    """Test that only the Prometheus reader remains without console export."""
    with patch.object(settings, "OTEL_CONSOLE_EXPORT", False), patch(
        "shared.metrics.MeterProvider"
    ) as mock_provider_cls, patch("shared.metrics.metrics.set_meter_provider"), patch(
        "shared.metrics.PeriodicExportingMetricReader"
    ) as mock_periodic_cls, patch("shared.metrics.PrometheusMetricReader") as mock_prometheus_cls:
        setup_metrics("test-app")

    mock_periodic_cls.assert_not_called()
    assert mock_provider_cls.call_args.kwargs["metric_readers"] == [
        mock_prometheus_cls.return_value
    ]
    assert mock_provider_cls.call_args.kwargs["resource"].attributes["service.name"] == "test-app"


def test_health_check():
    """Test the /health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "service" in response.json()


def test_app_startup_and_lifespan():
    """Test that lifespan startup events run without error."""
    with patch("main.TracerProvider"), patch(
        "main.BatchSpanProcessor"
    ), patch("main.ConsoleSpanExporter"), patch("main.trace"), patch(
        "main.LoggingInstrumentor"
    ), patch("main.setup_logging") as mock_setup_logging, patch(
        "main.setup_metrics"
    ) as mock_setup_metrics:
        with TestClient(app) as local_client:
            response = local_client.get("/health")
            assert response.status_code == 200

        mock_setup_logging.assert_called_once()
        mock_setup_metrics.assert_called_once()


def test_run_serves_with_ephemeral_certificate():
    """Test that run binds a server identity and hands its files to uvicorn."""
    registry = ConfigRegistry()
    seen = {}

    with patch("main.uvicorn.Server") as mock_server_cls:
        mock_server_cls.side_effect = lambda config: _capture(config, seen)
        run(registry=registry)

    bound = registry.lookup(TLSRole.SERVER)
    assert len(bound.certificates) == 1
    assert seen["certfile"].endswith("server.crt")
    assert seen["keyfile"].endswith("server.key")
    assert seen["ran"] is True


class _NoopServer:
    def __init__(self, seen):
        self._seen = seen

    def run(self):
        self._seen["ran"] = True


def _capture(config, seen):
    seen["certfile"] = config.ssl_certfile
    seen["keyfile"] = config.ssl_keyfile
    return _NoopServer(seen)
