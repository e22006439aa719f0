"""Key algorithm registry for ephemeral certificate keys.

Maps each supported ``KeyAlgorithm`` to exactly one key generation strategy.
Unknown identifiers are rejected, there is no fallback to the default.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.types import (
    CertificateIssuerPrivateKeyTypes,
    CertificateIssuerPublicKeyTypes,
)

from tlsconf.errors import KeyGenerationError, UnsupportedAlgorithmError

logger = logging.getLogger(__name__)


class KeyAlgorithm(StrEnum):
    """Supported certificate key algorithms."""

    DEFAULT = "default"  # ECDSA P-256
    RSA2048 = "rsa2048"
    RSA3072 = "rsa3072"
    RSA4096 = "rsa4096"
    RSA8192 = "rsa8192"
    ECDSA224 = "ecdsa224"
    ECDSA256 = "ecdsa256"
    ECDSA384 = "ecdsa384"
    ECDSA521 = "ecdsa521"
    ED25519 = "ed25519"


@dataclass(frozen=True)
class KeyStrategy:
    """How to generate and sign with keys of one algorithm."""

    generate: Callable[[], CertificateIssuerPrivateKeyTypes]
    signature_hash: hashes.HashAlgorithm | None


RSA_PUBLIC_EXPONENT = 65537


def _rsa(key_size: int) -> KeyStrategy:
    return KeyStrategy(
        generate=lambda: rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=key_size,
        ),
        signature_hash=hashes.SHA256(),
    )


def _ecdsa(curve: ec.EllipticCurve, signature_hash: hashes.HashAlgorithm) -> KeyStrategy:
    return KeyStrategy(
        generate=lambda: ec.generate_private_key(curve),
        signature_hash=signature_hash,
    )


_STRATEGIES: dict[KeyAlgorithm, KeyStrategy] = {
    KeyAlgorithm.DEFAULT: _ecdsa(ec.SECP256R1(), hashes.SHA256()),
    KeyAlgorithm.RSA2048: _rsa(2048),
    KeyAlgorithm.RSA3072: _rsa(3072),
    KeyAlgorithm.RSA4096: _rsa(4096),
    KeyAlgorithm.RSA8192: _rsa(8192),
    KeyAlgorithm.ECDSA224: _ecdsa(ec.SECP224R1(), hashes.SHA256()),
    KeyAlgorithm.ECDSA256: _ecdsa(ec.SECP256R1(), hashes.SHA256()),
    KeyAlgorithm.ECDSA384: _ecdsa(ec.SECP384R1(), hashes.SHA384()),
    KeyAlgorithm.ECDSA521: _ecdsa(ec.SECP521R1(), hashes.SHA512()),
    # Ed25519 signatures carry their own digest
    KeyAlgorithm.ED25519: KeyStrategy(
        generate=ed25519.Ed25519PrivateKey.generate,
        signature_hash=None,
    ),
}


def resolve_algorithm(algorithm: KeyAlgorithm | str) -> KeyAlgorithm:
    """Resolve an algorithm identifier to a ``KeyAlgorithm``.

    Raises:
        UnsupportedAlgorithmError: If the identifier is not known.
    """
    try:
        return KeyAlgorithm(algorithm)
    except ValueError as e:
        raise UnsupportedAlgorithmError(f"Unknown certificate algorithm: {algorithm!r}") from e


def key_strategy(algorithm: KeyAlgorithm | str) -> KeyStrategy:
    """Get the generation strategy for an algorithm."""
    return _STRATEGIES[resolve_algorithm(algorithm)]


def generate_key(
    algorithm: KeyAlgorithm | str,
) -> tuple[CertificateIssuerPublicKeyTypes, CertificateIssuerPrivateKeyTypes]:
    """Generate a key pair for the given algorithm.

    Args:
        algorithm: A ``KeyAlgorithm`` or its string value (e.g. ``"rsa2048"``).

    Returns:
        Tuple of (public_key, private_key).

    Raises:
        UnsupportedAlgorithmError: If the algorithm is not known.
        KeyGenerationError: If the crypto backend fails to generate the key.
    """
    resolved = resolve_algorithm(algorithm)
    strategy = _STRATEGIES[resolved]
    try:
        private_key = strategy.generate()
    except Exception as e:
        logger.error(
            "key_generation_failed",
            extra={"algorithm": resolved.value, "error": str(e)},
        )
        raise KeyGenerationError(f"Failed to generate {resolved.value} key: {e}") from e
    return private_key.public_key(), private_key


def get_algorithm_name(key: CertificateIssuerPrivateKeyTypes) -> str:
    """Get a human readable algorithm name from a private key."""
    if isinstance(key, rsa.RSAPrivateKey):
        return f"RSA-{key.key_size}"
    elif isinstance(key, ec.EllipticCurvePrivateKey):
        return f"ECDSA-{key.curve.name}"
    elif isinstance(key, ed25519.Ed25519PrivateKey):
        return "ED25519"
    return "UNKNOWN"
