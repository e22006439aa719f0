"""Trust pool: the set of certificates a verifier accepts as roots."""

import functools
import logging
import ssl
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from tlsconf.certs.crypto import compute_thumbprint, decode_certificates
from tlsconf.errors import DecodeError, SystemTrustUnavailableError

logger = logging.getLogger(__name__)

WINDOWS_SYSTEM_STORES = ("ROOT", "CA")


class TrustPool:
    """Ordered set of trusted certificates, deduplicated by SHA-256 thumbprint."""

    def __init__(self, certificates: Iterable[x509.Certificate] = ()) -> None:
        self._certificates: dict[str, x509.Certificate] = {}
        self.extend(certificates)

    @classmethod
    def from_system(cls) -> "TrustPool":
        """Create a pool seeded from the host's system trust store.

        Raises:
            SystemTrustUnavailableError: If the system store cannot be read.
        """
        return cls(load_system_certificates())

    def add(self, certificate: x509.Certificate) -> bool:
        """Add a certificate. Returns False if it was already trusted."""
        thumbprint = compute_thumbprint(certificate)
        if thumbprint in self._certificates:
            return False
        self._certificates[thumbprint] = certificate
        return True

    def extend(self, certificates: Iterable[x509.Certificate]) -> int:
        """Add several certificates. Returns the number actually added."""
        return sum(1 for certificate in certificates if self.add(certificate))

    def copy(self) -> "TrustPool":
        pool = TrustPool()
        pool._certificates = dict(self._certificates)
        return pool

    def to_pem(self) -> str:
        """Get all certificates as one PEM bundle."""
        return "".join(
            certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")
            for certificate in self._certificates.values()
        )

    def load_into(self, context: ssl.SSLContext) -> None:
        """Install the pool as the verify locations of an SSL context."""
        if self._certificates:
            context.load_verify_locations(cadata=self.to_pem())

    def __contains__(self, certificate: object) -> bool:
        if not isinstance(certificate, x509.Certificate):
            return False
        return compute_thumbprint(certificate) in self._certificates

    def __iter__(self) -> Iterator[x509.Certificate]:
        return iter(list(self._certificates.values()))

    def __len__(self) -> int:
        return len(self._certificates)

    def __repr__(self) -> str:
        return f"TrustPool({len(self)} certificates)"


@functools.lru_cache(maxsize=1)
def load_system_certificates() -> tuple[x509.Certificate, ...]:
    """Read the certificates of the host's system trust store.

    Uses the platform certificate stores on Windows and the OpenSSL default
    verify paths (honouring ``SSL_CERT_FILE``/``SSL_CERT_DIR``) elsewhere.
    The result is cached for the lifetime of the process.

    Raises:
        SystemTrustUnavailableError: If no trusted certificate can be read.
    """
    if sys.platform == "win32":
        certificates = _load_windows_stores()
    else:
        certificates = _load_openssl_paths()

    if not certificates:
        raise SystemTrustUnavailableError(
            f"No system trust certificates available on platform {sys.platform!r}"
        )

    logger.debug("system_trust_loaded", extra={"certificates": len(certificates)})
    return tuple(certificates)


def _load_windows_stores() -> list[x509.Certificate]:
    certificates = []
    for store in WINDOWS_SYSTEM_STORES:
        try:
            entries = ssl.enum_certificates(store)  # type: ignore[attr-defined]
        except OSError as e:
            raise SystemTrustUnavailableError(
                f"Failed to read Windows certificate store {store!r}: {e}"
            ) from e
        for der, encoding, _trust in entries:
            if encoding != "x509_asn":
                continue
            try:
                certificates.extend(decode_certificates(der))
            except DecodeError as e:
                logger.debug(
                    "system_trust_entry_skipped",
                    extra={"store": store, "error": str(e)},
                )
    return certificates


def _load_openssl_paths() -> list[x509.Certificate]:
    paths = ssl.get_default_verify_paths()

    if paths.cafile:
        try:
            return decode_certificates(Path(paths.cafile).read_bytes(), skip_invalid=True)
        except (OSError, DecodeError) as e:
            raise SystemTrustUnavailableError(
                f"Failed to read system trust file {paths.cafile!r}: {e}"
            ) from e

    certificates: list[x509.Certificate] = []
    if paths.capath:
        for entry in sorted(Path(paths.capath).iterdir()):
            if not entry.is_file():
                continue
            try:
                certificates.extend(decode_certificates(entry.read_bytes(), skip_invalid=True))
            except (OSError, DecodeError) as e:
                # capath directories also hold CRLs and unrelated files
                logger.debug(
                    "system_trust_entry_skipped",
                    extra={"path": str(entry), "error": str(e)},
                )
    return certificates
