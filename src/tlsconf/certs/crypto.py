"""Cryptographic utilities for certificate operations.

Provides PEM/DER certificate decoding, certificate/key pair loading and
thumbprint computation.
"""

import hashlib
import logging
import re
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from tlsconf.errors import CertificateEncodingError, DecodeError

logger = logging.getLogger(__name__)

_PEM_BLOCK = re.compile(
    rb"-----BEGIN ([A-Z0-9 ]+)-----\r?\n.*?-----END \1-----",
    re.DOTALL,
)

PEM_BOUNDARY = b"-----BEGIN "
PEM_CERTIFICATE_TYPES = (b"CERTIFICATE", b"X509 CERTIFICATE")
_DER_SEQUENCE_TAG = 0x30


@dataclass(frozen=True)
class CertificateKeyPair:
    """A certificate together with its private key, ready for TLS use."""

    certificate: x509.Certificate
    private_key: CertificateIssuerPrivateKeyTypes

    @property
    def certificate_pem(self) -> str:
        """Get certificate as PEM string."""
        return self.certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")

    @property
    def private_key_pem(self) -> str:
        """Get private key as unencrypted PKCS8 PEM string."""
        return self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ).decode("utf-8")

    @classmethod
    def from_pem(cls, cert_pem: bytes, key_pem: bytes) -> "CertificateKeyPair":
        """Load a certificate/key pair from PEM data.

        Raises:
            CertificateEncodingError: If either part cannot be parsed or the
                private key does not belong to the certificate.
        """
        try:
            certificate = x509.load_pem_x509_certificate(cert_pem)
            private_key = serialization.load_pem_private_key(key_pem, password=None)
        except (ValueError, TypeError) as e:
            raise CertificateEncodingError(f"Failed to parse certificate/key PEM: {e}") from e

        if _public_der(certificate.public_key()) != _public_der(private_key.public_key()):
            raise CertificateEncodingError(
                "Private key does not match certificate public key "
                f"(subject {certificate.subject.rfc4514_string()!r})"
            )
        return cls(certificate=certificate, private_key=private_key)  # type: ignore[arg-type]


def _public_der(public_key) -> bytes:  # type: ignore[no-untyped-def]
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def decode_certificates(data: bytes, skip_invalid: bool = False) -> list[x509.Certificate]:
    """Decode all certificates contained in PEM or DER encoded data.

    Data holding a PEM boundary is read as a PEM bundle: every ``CERTIFICATE``
    (or legacy ``X509 CERTIFICATE``) block is parsed and other block types are
    skipped. Anything else is parsed as one or more concatenated DER
    certificates.

    Args:
        data: The encoded certificate data.
        skip_invalid: Skip malformed PEM certificate blocks instead of failing.
            Used for system trust bundles, which may carry stray entries.

    Returns:
        The decoded certificates in input order. Empty input yields an empty list.

    Raises:
        DecodeError: If non-empty data yields no parseable certificate.
    """
    if not data:
        return []

    if PEM_BOUNDARY in data:
        if skip_invalid:
            return _decode_pem_blocks(data)
        try:
            return x509.load_pem_x509_certificates(data)
        except ValueError as e:
            raise DecodeError(f"Failed to parse PEM encoded certificates: {e}") from e

    try:
        return [x509.load_der_x509_certificate(chunk) for chunk in _split_der(data)]
    except ValueError as e:
        raise DecodeError(f"Failed to parse DER encoded certificate: {e}") from e


def _decode_pem_blocks(data: bytes) -> list[x509.Certificate]:
    """Parse PEM certificate blocks one by one, dropping those that fail."""
    certificates = []
    blocks = list(_PEM_BLOCK.finditer(data))
    for block in blocks:
        if block.group(1) not in PEM_CERTIFICATE_TYPES:
            continue
        try:
            certificates.append(x509.load_pem_x509_certificate(block.group(0)))
        except ValueError as e:
            logger.debug("pem_certificate_skipped", extra={"error": str(e)})
    if not certificates:
        raise DecodeError(f"No valid certificate among {len(blocks)} PEM block(s)")
    return certificates


def _split_der(data: bytes) -> list[bytes]:
    """Split concatenated DER SEQUENCEs into separate encodings."""
    chunks = []
    offset = 0
    while offset < len(data):
        if data[offset] != _DER_SEQUENCE_TAG or offset + 2 > len(data):
            raise ValueError(f"no DER sequence at offset {offset}")
        length = data[offset + 1]
        header = 2
        if length & 0x80:
            length_bytes = length & 0x7F
            if length_bytes == 0 or length_bytes > 4:
                raise ValueError(f"unsupported DER length encoding at offset {offset}")
            header += length_bytes
            length = int.from_bytes(data[offset + 2 : offset + header], "big")
        end = offset + header + length
        if end > len(data):
            raise ValueError(f"truncated DER sequence at offset {offset}")
        chunks.append(data[offset:end])
        offset = end
    return chunks


def compute_thumbprint(certificate: x509.Certificate) -> str:
    """Compute SHA-256 thumbprint of a certificate.

    Returns:
        Lowercase hexadecimal SHA-256 thumbprint of the DER encoding.
    """
    der_bytes = certificate.public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der_bytes).hexdigest().lower()
