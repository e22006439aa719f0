"""Certificate module for tlsconf.

This module provides:
- Key algorithm registry and key generation
- Collision-free certificate serial numbers
- Self-signed ephemeral certificate generation
- PEM/DER decoding and certificate file persistence
"""

from tlsconf.certs.crypto import CertificateKeyPair, decode_certificates
from tlsconf.certs.generator import CertificateGenerator, generate_ephemeral_certificate
from tlsconf.certs.keys import KeyAlgorithm, generate_key
from tlsconf.certs.serial import SerialNumberSource
from tlsconf.certs.storage import read_certificate, write_certificate

__all__ = [
    "CertificateGenerator",
    "CertificateKeyPair",
    "KeyAlgorithm",
    "SerialNumberSource",
    "decode_certificates",
    "generate_ephemeral_certificate",
    "generate_key",
    "read_certificate",
    "write_certificate",
]
