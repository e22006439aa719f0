"""Peer certificate fetching.

Captures the certificate chain a TLS server presents without trusting it
first. The handshake runs with a verification callback that, instead of
judging trust, collects the presented chain and aborts the handshake with a
``PeerCertificatesCollected`` signal carrying the certificates.

Only meant for test and bootstrap tooling, never for production chain
validation.
"""

import ipaddress
import logging
import socket

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from OpenSSL import SSL, crypto
from opentelemetry import trace

from tlsconf.certs.crypto import decode_certificates
from tlsconf.certs.generator import split_host_port
from tlsconf.errors import (
    AddressParseError,
    NoCertificatesReceivedError,
    PeerConnectionError,
    UnexpectedHandshakeSuccessError,
)
from tlsconf.metrics import tlsconf_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NETWORK_FAMILIES = {
    "tcp": socket.AF_UNSPEC,
    "tcp4": socket.AF_INET,
    "tcp6": socket.AF_INET6,
}


class PeerCertificatesCollected(Exception):
    """Raised by the verification callback to carry the unverified peer chain."""

    def __init__(self, certificates: list[x509.Certificate]) -> None:
        super().__init__(f"{len(certificates)} peer certificates received")
        self.certificates = certificates


def _der(certificate: crypto.X509) -> bytes:
    return certificate.to_cryptography().public_bytes(serialization.Encoding.DER)


class _ChainCollector:
    """Verification callback collecting the peer chain instead of verifying it.

    OpenSSL walks the chain from the top down to the leaf at depth 0. Upper
    levels are accepted so that the walk reaches the leaf, where the complete
    chain is collected and the handshake is aborted.
    """

    def __init__(self) -> None:
        self._seen: dict[int, bytes] = {}

    def __call__(
        self,
        connection: SSL.Connection,
        certificate: crypto.X509,
        errnum: int,
        depth: int,
        ok: int,
    ) -> bool:
        self._seen[depth] = _der(certificate)
        if depth > 0:
            return True

        chain = connection.get_peer_cert_chain()
        if chain:
            encoded = [_der(peer_certificate) for peer_certificate in chain]
        else:
            encoded = [self._seen[level] for level in sorted(self._seen)]

        certificates: list[x509.Certificate] = []
        for raw in encoded:
            certificates.extend(decode_certificates(raw))
        raise PeerCertificatesCollected(certificates)


def _dial(network: str, host: str, port: str, timeout: float | None) -> socket.socket:
    family = NETWORK_FAMILIES.get(network)
    if family is None:
        raise AddressParseError(
            f"Unsupported network {network!r} (expected one of {sorted(NETWORK_FAMILIES)})"
        )

    try:
        candidates = socket.getaddrinfo(host, port, family, socket.SOCK_STREAM)
    except OSError as e:
        raise PeerConnectionError(f"Failed to resolve {network}:{host}:{port}: {e}") from e

    last_error: OSError | None = None
    for af, socktype, proto, _, sockaddr in candidates:
        sock = socket.socket(af, socktype, proto)
        # The timeout bounds the dial only; pyOpenSSL needs a blocking socket
        sock.settimeout(timeout)
        try:
            sock.connect(sockaddr)
        except OSError as e:
            sock.close()
            last_error = e
            continue
        sock.settimeout(None)
        return sock

    raise PeerConnectionError(
        f"Failed to connect to {network}:{host}:{port}: {last_error}"
    ) from last_error


def fetch_server_certificates(
    network: str,
    address: str,
    timeout: float | None = None,
) -> list[x509.Certificate]:
    """Fetch the certificate chain presented by a TLS server.

    Args:
        network: ``tcp``, ``tcp4`` or ``tcp6``.
        address: ``host:port`` of the server.
        timeout: Optional dial timeout in seconds.

    Returns:
        The unverified peer certificates, leaf first.

    Raises:
        AddressParseError: If the network or address is invalid.
        PeerConnectionError: If the connection cannot be established.
        NoCertificatesReceivedError: If the peer presented no certificates.
        UnexpectedHandshakeSuccessError: If the handshake completed anyway.
        OpenSSL.SSL.Error: Any other handshake failure, unchanged.
    """
    with tracer.start_as_current_span("fetch_server_certificates") as span:
        span.set_attribute("network", network)
        span.set_attribute("address", address)

        try:
            host, port = split_host_port(address)
            if not port:
                raise AddressParseError(f"Failed to decode address {address!r}: missing port")

            sock = _dial(network, host, port, timeout)
            try:
                context = SSL.Context(SSL.TLS_CLIENT_METHOD)
                context.set_verify(SSL.VERIFY_PEER, _ChainCollector())
                connection = SSL.Connection(context, sock)
                connection.set_connect_state()
                if not _is_ip_address(host):
                    connection.set_tlsext_host_name(host.encode("idna"))
                try:
                    connection.do_handshake()
                except PeerCertificatesCollected as collected:
                    certificates = collected.certificates
                else:
                    raise UnexpectedHandshakeSuccessError(
                        f"Failed to fetch server certificates ({network}:{address}): "
                        "handshake unexpectedly succeeded"
                    )
            finally:
                sock.close()

            if not certificates:
                raise NoCertificatesReceivedError(
                    f"No certificates received from {network}:{address}"
                )
        except Exception as e:
            tlsconf_metrics.record_peer_fetch("error")
            logger.warning(
                "peer_certificate_fetch_failed",
                extra={"network": network, "address": address, "error": str(e)},
            )
            raise

        span.set_attribute("certificates", len(certificates))
        tlsconf_metrics.record_peer_fetch("collected")
        logger.info(
            "peer_certificates_fetched",
            extra={
                "network": network,
                "address": address,
                "certificates": len(certificates),
                "subject": certificates[0].subject.rfc4514_string(),
            },
        )
        return certificates


def _is_ip_address(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True
