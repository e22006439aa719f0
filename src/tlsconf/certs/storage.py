"""Certificate file persistence.

Writes a certificate/key pair as two PEM files and reads them back. Also
bridges in-memory pairs into ``ssl.SSLContext`` objects, which only load
certificate chains from files.
"""

import logging
import os
import ssl
import tempfile
from pathlib import Path

from tlsconf.certs.crypto import CertificateKeyPair
from tlsconf.errors import CertificateEncodingError, FileReadError

logger = logging.getLogger(__name__)

CERT_SUFFIX = ".crt"
KEY_SUFFIX = ".key"
KEY_FILE_MODE = 0o600


def write_certificate(
    key_pair: CertificateKeyPair,
    directory: str | Path,
    name: str,
) -> tuple[Path, Path]:
    """Write a certificate and its private key to ``directory``.

    The certificate goes to ``<name>.crt`` (PEM), the key to ``<name>.key``
    (PEM/PKCS8, readable by the owner only).

    Returns:
        Tuple of (cert_path, key_path).

    Raises:
        CertificateEncodingError: If the files cannot be written.
    """
    directory = Path(directory)
    cert_path = directory / f"{name}{CERT_SUFFIX}"
    key_path = directory / f"{name}{KEY_SUFFIX}"

    try:
        cert_path.write_text(key_pair.certificate_pem, encoding="utf-8")
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEY_FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as key_file:
            key_file.write(key_pair.private_key_pem)
    except OSError as e:
        raise CertificateEncodingError(
            f"Failed to write certificate {name!r} to {str(directory)!r}: {e}"
        ) from e

    logger.info(
        "certificate_written",
        extra={"cert_path": str(cert_path), "key_path": str(key_path)},
    )
    return cert_path, key_path


def read_certificate(cert_path: str | Path, key_path: str | Path) -> CertificateKeyPair:
    """Read a certificate/key pair written by ``write_certificate``.

    Raises:
        FileReadError: If either file cannot be read.
        CertificateEncodingError: If the content is not a matching PEM pair.
    """
    try:
        cert_pem = Path(cert_path).read_bytes()
        key_pem = Path(key_path).read_bytes()
    except OSError as e:
        raise FileReadError(
            f"Failed to read certificate files {str(cert_path)!r}, {str(key_path)!r}: {e}"
        ) from e
    return CertificateKeyPair.from_pem(cert_pem, key_pem)


def load_cert_chain(context: ssl.SSLContext, key_pair: CertificateKeyPair) -> None:
    """Load an in-memory certificate/key pair into an SSL context.

    The pair is staged in a private temporary directory that is removed again
    once the context has loaded it.
    """
    with tempfile.TemporaryDirectory(prefix="tlsconf_") as tmp_dir:
        cert_path, key_path = write_certificate(key_pair, tmp_dir, "identity")
        try:
            context.load_cert_chain(certfile=str(cert_path), keyfile=str(key_path))
        except ssl.SSLError as e:
            raise CertificateEncodingError(
                f"Failed to load certificate into SSL context: {e}"
            ) from e
