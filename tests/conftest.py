"""Shared fixtures: registries, ephemeral certificates and a live HTTPS server."""

import socket
import threading
import time
from dataclasses import dataclass
from datetime import timedelta

import pytest
import uvicorn

from main import app
from tlsconf.certs.crypto import CertificateKeyPair
from tlsconf.certs.generator import generate_ephemeral_certificate
from tlsconf.certs.keys import KeyAlgorithm
from tlsconf.domain.states import TLSRole
from tlsconf.services.options import set_options, use_ephemeral_certificate
from tlsconf.services.registry import ConfigRegistry
from tlsconf.transport import apply_server_config

SERVER_STARTUP_TIMEOUT = 10.0


@dataclass
class RunningServer:
    """A uvicorn HTTPS server running in a background thread."""

    address: str
    registry: ConfigRegistry

    @property
    def url(self) -> str:
        return f"https://{self.address}"


@pytest.fixture
def registry() -> ConfigRegistry:
    """A fresh configuration registry per test."""
    return ConfigRegistry()


@pytest.fixture(scope="session")
def ephemeral_pair() -> CertificateKeyPair:
    """A default-algorithm ephemeral certificate for localhost."""
    return generate_ephemeral_certificate("localhost", KeyAlgorithm.DEFAULT, timedelta(hours=1))


@pytest.fixture
def tls_server(tmp_path):
    """Serve the demo app over HTTPS with an ephemeral certificate.

    The certificate is generated for the listener's resolved address and
    bound as server identity in a test-local registry.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    host, port = sock.getsockname()
    address = f"{host}:{port}"

    server_registry = ConfigRegistry()
    set_options(
        TLSRole.SERVER,
        use_ephemeral_certificate(address, KeyAlgorithm.DEFAULT, timedelta(hours=1)),
        registry=server_registry,
    )

    config = uvicorn.Config(app, lifespan="off", log_level="warning")
    apply_server_config(config, tmp_path, registry=server_registry)
    server = uvicorn.Server(config)

    thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, daemon=True)
    thread.start()

    deadline = time.monotonic() + SERVER_STARTUP_TIMEOUT
    while not server.started:
        if not thread.is_alive() or time.monotonic() > deadline:
            raise RuntimeError("HTTPS test server failed to start")
        time.sleep(0.01)

    yield RunningServer(address=address, registry=server_registry)

    server.should_exit = True
    thread.join(timeout=SERVER_STARTUP_TIMEOUT)
    sock.close()
