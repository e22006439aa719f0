"""Tests for fetching the certificate chain of a live TLS server."""

import socket
import threading
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from OpenSSL import SSL, crypto

from tlsconf.certs.generator import generate_ephemeral_certificate
from tlsconf.certs.keys import KeyAlgorithm
from tlsconf.domain.states import TLSRole
from tlsconf.errors import (
    AddressParseError,
    NoCertificatesReceivedError,
    PeerConnectionError,
    UnexpectedHandshakeSuccessError,
)
from tlsconf.trust.fetcher import (
    PeerCertificatesCollected,
    _ChainCollector,
    fetch_server_certificates,
)


@pytest.fixture
def closed_port():
    """A local port nobody listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def plain_tcp_server():
    """A server answering every connection with plain text instead of TLS."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    listener.settimeout(5)

    def serve():
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        with conn:
            conn.recv(4096)
            conn.sendall(b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n")

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield "127.0.0.1:{}".format(listener.getsockname()[1])
    thread.join(timeout=5)
    listener.close()


class TestFetchServerCertificates:
    """Tests against a running HTTPS server."""

    def test_fetches_server_identity(self, tls_server):
        """Test that the presented certificate is the bound server identity."""
        certificates = fetch_server_certificates("tcp", tls_server.address)

        bound = tls_server.registry.lookup(TLSRole.SERVER).certificates[0]
        assert certificates == [bound.certificate]

    def test_fetch_over_tcp4_with_timeout(self, tls_server):
        """Test an explicit network family and dial timeout."""
        certificates = fetch_server_certificates("tcp4", tls_server.address, timeout=5.0)

        assert len(certificates) == 1

    def test_records_fetch(self, tls_server):
        """Test that successful fetches are recorded."""
        with patch("tlsconf.trust.fetcher.tlsconf_metrics") as mock_metrics:
            fetch_server_certificates("tcp", tls_server.address)

        mock_metrics.record_peer_fetch.assert_called_once_with("collected")

    def test_connection_refused(self, closed_port):
        """Test that dial failures raise PeerConnectionError."""
        with patch("tlsconf.trust.fetcher.tlsconf_metrics") as mock_metrics:
            with pytest.raises(PeerConnectionError):
                fetch_server_certificates("tcp", f"127.0.0.1:{closed_port}", timeout=2.0)

        mock_metrics.record_peer_fetch.assert_called_once_with("error")

    def test_handshake_failure_propagates(self, plain_tcp_server):
        """Test that TLS protocol errors surface unchanged."""
        with pytest.raises(SSL.Error):
            fetch_server_certificates("tcp", plain_tcp_server, timeout=5.0)

    @pytest.mark.parametrize("network", ["udp", "unix", ""])
    def test_unsupported_network(self, network):
        """Test that only TCP networks are accepted."""
        with pytest.raises(AddressParseError, match="Unsupported network"):
            fetch_server_certificates(network, "127.0.0.1:443")

    @pytest.mark.parametrize("address", ["127.0.0.1", "localhost:", "::1"])
    def test_bad_address(self, address):
        """Test that addresses without a port are rejected."""
        with pytest.raises(AddressParseError):
            fetch_server_certificates("tcp", address)


class TestHandshakeOutcomes:
    """Tests for handshake outcomes that a real server rarely produces."""

    def test_unexpected_success(self):
        """Test that a completed handshake is reported as an error."""
        with patch("tlsconf.trust.fetcher._dial", return_value=MagicMock()) as mock_dial, patch(
            "tlsconf.trust.fetcher.SSL"
        ):
            with pytest.raises(UnexpectedHandshakeSuccessError):
                fetch_server_certificates("tcp", "localhost:8443")

        mock_dial.return_value.close.assert_called_once()

    def test_no_certificates(self):
        """Test that an empty peer chain is reported as an error."""
        with patch("tlsconf.trust.fetcher._dial", return_value=MagicMock()), patch(
            "tlsconf.trust.fetcher.SSL"
        ) as mock_ssl:
            mock_ssl.Connection.return_value.do_handshake.side_effect = (
                PeerCertificatesCollected([])
            )
            with pytest.raises(NoCertificatesReceivedError):
                fetch_server_certificates("tcp", "localhost:8443")

    def test_sets_server_name_for_host_names(self):
        """Test that SNI is sent for host names but not for IP literals."""
        with patch("tlsconf.trust.fetcher._dial", return_value=MagicMock()), patch(
            "tlsconf.trust.fetcher.SSL"
        ) as mock_ssl:
            connection = mock_ssl.Connection.return_value
            connection.do_handshake.side_effect = PeerCertificatesCollected([MagicMock()])

            fetch_server_certificates("tcp", "example.test:443")
            connection.set_tlsext_host_name.assert_called_once_with(b"example.test")

            connection.set_tlsext_host_name.reset_mock()
            fetch_server_certificates("tcp", "10.1.2.3:443")
            connection.set_tlsext_host_name.assert_not_called()


class TestChainCollector:
    """Tests for the verification callback."""

    @pytest.fixture(scope="class")
    def chain(self):
        return [
            generate_ephemeral_certificate(host, KeyAlgorithm.DEFAULT, timedelta(hours=1)).certificate
            for host in ("leaf.test", "intermediate.test")
        ]

    def test_accepts_upper_levels(self, chain):
        """Test that non-leaf levels are accepted to reach the leaf."""
        collector = _ChainCollector()

        assert collector(MagicMock(), crypto.X509.from_cryptography(chain[1]), 0, 1, 1) is True

    def test_collects_peer_chain_at_leaf(self, chain):
        """Test that the leaf aborts the handshake carrying the peer chain."""
        connection = MagicMock()
        connection.get_peer_cert_chain.return_value = [
            crypto.X509.from_cryptography(certificate) for certificate in chain
        ]

        with pytest.raises(PeerCertificatesCollected) as exc_info:
            _ChainCollector()(connection, crypto.X509.from_cryptography(chain[0]), 0, 0, 1)

        assert exc_info.value.certificates == chain

    def test_falls_back_to_seen_certificates(self, chain):
        """Test collection when the connection exposes no chain yet."""
        connection = MagicMock()
        connection.get_peer_cert_chain.return_value = None
        collector = _ChainCollector()

        collector(connection, crypto.X509.from_cryptography(chain[1]), 0, 1, 1)
        with pytest.raises(PeerCertificatesCollected) as exc_info:
            collector(connection, crypto.X509.from_cryptography(chain[0]), 0, 0, 1)

        assert exc_info.value.certificates == chain
