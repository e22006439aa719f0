"""Ephemeral X.509 certificate generation.

Generates short-lived self-signed server certificates for a host/address,
suitable for tests and bootstrapping.
"""

import ipaddress
import logging
import time
import warnings
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificateIssuerPublicKeyTypes,
)
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from opentelemetry import trace

from tlsconf.certs.crypto import CertificateKeyPair
from tlsconf.certs.keys import KeyAlgorithm, generate_key, key_strategy, resolve_algorithm
from tlsconf.certs.serial import SerialNumberSource, serial_numbers
from tlsconf.errors import AddressParseError, CertificateEncodingError, TLSConfError
from tlsconf.metrics import tlsconf_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

COMMON_NAME_MAX_LENGTH = 64


def split_host_port(address: str) -> tuple[str, str | None]:
    """Split an address into host and optional port.

    Accepts ``host``, ``host:port``, ``host:``, ``[v6]`` and ``[v6]:port``.

    Raises:
        AddressParseError: If the address cannot be split.
    """
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise AddressParseError(f"Failed to decode address {address!r}: missing ']'")
        host = address[1:end]
        rest = address[end + 1 :]
        if not rest:
            return host, None
        if not rest.startswith(":"):
            raise AddressParseError(
                f"Failed to decode address {address!r}: unexpected {rest!r} after ']'"
            )
        return host, rest[1:]

    if ":" not in address:
        return address, None
    host, _, port = address.rpartition(":")
    if ":" in host:
        raise AddressParseError(f"Failed to decode address {address!r}: too many colons")
    return host, port


def _common_name_attribute(host: str) -> x509.NameAttribute:
    # X.520 caps CN at 64 characters, DNS names may be longer
    if len(host.encode("utf-8")) <= COMMON_NAME_MAX_LENGTH:
        return x509.NameAttribute(NameOID.COMMON_NAME, host)
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        return x509.NameAttribute(NameOID.COMMON_NAME, host, _validate=False)


def _subject_alternative_name(host: str) -> x509.SubjectAlternativeName:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return x509.SubjectAlternativeName([x509.DNSName(host)])
    return x509.SubjectAlternativeName([x509.IPAddress(ip)])


class CertificateGenerator:
    """Generates self-signed ephemeral certificates.

    Certificate attributes:
    - Subject: CN=<host>
    - SAN: IP address if the host is an IP literal, otherwise DNS name
    - Validity: now() to now() + lifetime
    - Key Usage: Digital Signature
    - Extended Key Usage: Server Authentication
    - Basic Constraints: CA=true (the certificate is its own trust root)
    """

    def __init__(self, serial_source: SerialNumberSource | None = None) -> None:
        """Initialize generator.

        Args:
            serial_source: Serial number source; defaults to the process-wide one.
        """
        self._serials = serial_source or serial_numbers

    def generate(
        self,
        address: str,
        algorithm: KeyAlgorithm | str,
        lifetime: timedelta,
    ) -> CertificateKeyPair:
        """Generate a new ephemeral certificate.

        Args:
            address: Hostname, IP address or ``host:port``; a port is discarded.
            algorithm: Key algorithm for the certificate key.
            lifetime: How long the certificate stays valid.

        Returns:
            CertificateKeyPair holding the certificate and its private key.

        Raises:
            AddressParseError: If the address cannot be split.
            UnsupportedAlgorithmError: If the algorithm is not known.
            KeyGenerationError: If key generation fails.
            CertificateEncodingError: If signing or serialization fails.
        """
        with tracer.start_as_current_span("CertificateGenerator.generate") as span:
            span.set_attribute("address", address)
            span.set_attribute("algorithm", str(algorithm))

            start_time = time.time()

            try:
                host, _ = split_host_port(address)
                if not host:
                    raise AddressParseError(f"Failed to decode address {address!r}: empty host")
                resolved = resolve_algorithm(algorithm)
                if lifetime <= timedelta(0):
                    raise CertificateEncodingError(
                        f"Certificate lifetime must be positive, got {lifetime}"
                    )

                public_key, private_key = generate_key(resolved)
                serial_number = self._serials.next()
                span.set_attribute("serial", serial_number)

                now = datetime.now(timezone.utc)
                not_before = now
                not_after = now + lifetime

                try:
                    certificate = self._sign(
                        host, public_key, private_key, serial_number, not_before, not_after,
                        key_strategy(resolved).signature_hash,
                    )
                    cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
                    key_pem = private_key.private_bytes(
                        encoding=serialization.Encoding.PEM,
                        format=serialization.PrivateFormat.PKCS8,
                        encryption_algorithm=serialization.NoEncryption(),
                    )
                except (ValueError, TypeError) as e:
                    raise CertificateEncodingError(
                        f"Failed to create certificate for {host!r}: {e}"
                    ) from e

                key_pair = CertificateKeyPair.from_pem(cert_pem, key_pem)

                generation_time = time.time() - start_time
                tlsconf_metrics.record_certificate_generated(resolved.value, generation_time)

                logger.info(
                    "certificate_generated",
                    extra={
                        "address": address,
                        "algorithm": resolved.value,
                        "serial": serial_number,
                        "not_after": not_after.isoformat(),
                        "duration_seconds": generation_time,
                    },
                )

                return key_pair

            except TLSConfError as e:
                tlsconf_metrics.record_certificate_generation_failed(str(algorithm))
                logger.error(
                    "certificate_generation_failed",
                    extra={"address": address, "algorithm": str(algorithm), "error": str(e)},
                )
                raise

    def _sign(
        self,
        host: str,
        public_key: CertificateIssuerPublicKeyTypes,
        private_key: CertificateIssuerPrivateKeyTypes,
        serial_number: int,
        not_before: datetime,
        not_after: datetime,
        signature_hash: hashes.HashAlgorithm | None,
    ) -> x509.Certificate:
        # Self-signed: issuer = subject
        subject = issuer = x509.Name([_common_name_attribute(host)])

        cert_builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(_subject_alternative_name(host), critical=False)
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    key_encipherment=False,
                    key_cert_sign=False,
                    crl_sign=False,
                    content_commitment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
                critical=False,
            )
            .add_extension(
                x509.SubjectKeyIdentifier.from_public_key(public_key),
                critical=False,
            )
        )
        return cert_builder.sign(private_key, signature_hash)  # type: ignore[arg-type]


_default_generator = CertificateGenerator()


def generate_ephemeral_certificate(
    address: str,
    algorithm: KeyAlgorithm | str,
    lifetime: timedelta,
) -> CertificateKeyPair:
    """Generate a self-signed certificate for ``address`` using the shared serial source."""
    return _default_generator.generate(address, algorithm, lifetime)
