"""Attach bound TLS settings to HTTP clients and servers.

Clients are ``httpx`` clients, servers are ``uvicorn`` configurations. A
transport the caller already configured is never overwritten: a warning is
logged and the caller's choice is kept.
"""

import logging
from pathlib import Path
from typing import Any

import httpx
import uvicorn

from tlsconf.certs.storage import write_certificate
from tlsconf.domain.states import TLSRole
from tlsconf.services.registry import ConfigRegistry, default_registry

logger = logging.getLogger(__name__)

SERVER_CERT_NAME = "server"


def client_transport(registry: ConfigRegistry | None = None) -> httpx.HTTPTransport:
    """Get an httpx transport verifying peers with the bound client settings."""
    client_settings = (registry or default_registry).lookup(TLSRole.CLIENT)
    return httpx.HTTPTransport(verify=client_settings.ssl_context())


def new_client(registry: ConfigRegistry | None = None, **kwargs: Any) -> httpx.Client:
    """Create an httpx client using the bound client settings.

    If ``kwargs`` already configure ``transport`` or ``verify``, they are
    passed through untouched and a warning is logged.
    """
    configured = sorted(key for key in ("transport", "verify") if key in kwargs)
    if configured:
        logger.warning(
            "transport_already_configured",
            extra={"endpoint": "client", "configured": configured},
        )
        return httpx.Client(**kwargs)
    return httpx.Client(transport=client_transport(registry), **kwargs)


def apply_server_config(
    config: uvicorn.Config,
    directory: str | Path,
    registry: ConfigRegistry | None = None,
) -> uvicorn.Config:
    """Point a uvicorn config at the bound server identity.

    uvicorn loads TLS material from files, so the first bound server
    certificate is written to ``directory``. A config that already names TLS
    files is left unmodified.

    Returns:
        The same config.
    """
    if config.ssl_certfile or config.ssl_keyfile:
        logger.warning(
            "transport_already_configured",
            extra={"endpoint": "server", "ssl_certfile": str(config.ssl_certfile)},
        )
        return config

    server_settings = (registry or default_registry).lookup(TLSRole.SERVER)
    if not server_settings.certificates:
        logger.warning("server_identity_missing", extra={"endpoint": "server"})
        return config

    cert_path, key_path = write_certificate(
        server_settings.certificates[0], directory, SERVER_CERT_NAME
    )
    config.ssl_certfile = str(cert_path)
    config.ssl_keyfile = str(key_path)
    return config
