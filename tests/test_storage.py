"""Tests for certificate file persistence."""

import os
import ssl

import pytest

from tlsconf.certs.storage import load_cert_chain, read_certificate, write_certificate
from tlsconf.errors import CertificateEncodingError, FileReadError


class TestCertificateFiles:
    """Tests for write_certificate and read_certificate."""

    def test_write_then_read(self, ephemeral_pair, tmp_path):
        """Test that a written pair is read back unchanged."""
        cert_path, key_path = write_certificate(ephemeral_pair, tmp_path, "server")

        assert cert_path == tmp_path / "server.crt"
        assert key_path == tmp_path / "server.key"

        pair = read_certificate(cert_path, key_path)
        assert pair.certificate == ephemeral_pair.certificate
        assert pair.private_key_pem == ephemeral_pair.private_key_pem

    @pytest.mark.skipif(os.name == "nt", reason="POSIX file modes")
    def test_key_file_is_private(self, ephemeral_pair, tmp_path):
        """Test that the key file is readable by the owner only."""
        _, key_path = write_certificate(ephemeral_pair, tmp_path, "server")

        assert key_path.stat().st_mode & 0o777 == 0o600

    def test_write_to_missing_directory(self, ephemeral_pair, tmp_path):
        """Test that write failures are reported."""
        with pytest.raises(CertificateEncodingError):
            write_certificate(ephemeral_pair, tmp_path / "missing", "server")

    def test_read_missing_file(self, tmp_path):
        """Test that missing files raise FileReadError."""
        with pytest.raises(FileReadError):
            read_certificate(tmp_path / "nope.crt", tmp_path / "nope.key")


class TestLoadCertChain:
    """Tests for load_cert_chain."""

    def test_loads_into_context(self, ephemeral_pair):
        """Test that an in-memory pair can be installed in an SSL context."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)

        load_cert_chain(context, ephemeral_pair)
