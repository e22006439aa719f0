import tempfile
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import uvicorn
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from shared.config import settings
from shared.logging import setup_logging
from shared.metrics import setup_metrics
from shared.telemetry import service_resource
from tlsconf.domain.states import TLSRole
from tlsconf.services.options import set_options, use_ephemeral_certificate
from tlsconf.services.registry import ConfigRegistry, default_registry
from tlsconf.transport import apply_server_config


# Setup OpenTelemetry Tracing
def setup_tracing() -> None:
    provider = TracerProvider(resource=service_resource())

    if settings.OTEL_CONSOLE_EXPORT:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    setup_logging()
    setup_tracing()
    setup_metrics(settings.APP_NAME)

    LoggingInstrumentor().instrument(set_logging_format=True)

    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Instrument FastAPI
FastAPIInstrumentor.instrument_app(app)


@app.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok", "service": settings.APP_NAME}


def run(registry: ConfigRegistry | None = None) -> None:
    """Serve the app over HTTPS with an ephemeral certificate for the listen address."""
    registry = registry or default_registry
    address = f"{settings.DEMO_HOST}:{settings.DEMO_PORT}"
    set_options(
        TLSRole.SERVER,
        use_ephemeral_certificate(
            address,
            settings.DEMO_KEY_ALGORITHM,
            timedelta(hours=settings.DEMO_CERT_LIFETIME_HOURS),
        ),
        registry=registry,
    )

    with tempfile.TemporaryDirectory(prefix="tlsconf_demo_") as cert_dir:
        config = uvicorn.Config(app, host=settings.DEMO_HOST, port=settings.DEMO_PORT)
        apply_server_config(config, cert_dir, registry=registry)
        uvicorn.Server(config).run()


if __name__ == "__main__":
    run()
