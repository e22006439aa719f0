from opentelemetry.sdk.resources import Resource

from tlsconf import __version__

from .config import settings


def service_resource(app_name: str | None = None) -> Resource:
    """Build the OTel resource shared by logs, metrics and traces."""
    return Resource.create(
        {
            "service.name": app_name or settings.APP_NAME,
            "service.version": __version__,
            "deployment.environment": settings.APP_ENV,
        }
    )
