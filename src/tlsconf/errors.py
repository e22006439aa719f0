"""Error kinds raised by the tlsconf components.

Every error carries the failing operation and the offending input in its
message. Underlying causes are chained via ``raise ... from``.
"""


class TLSConfError(Exception):
    """Base class for all tlsconf errors."""

    pass


class UnsupportedAlgorithmError(TLSConfError):
    """Raised when a key algorithm identifier is not known."""

    pass


class AddressParseError(TLSConfError):
    """Raised when an address cannot be split into host and port."""

    pass


class KeyGenerationError(TLSConfError):
    """Raised when the crypto backend fails to generate a key."""

    pass


class CertificateEncodingError(TLSConfError):
    """Raised when a certificate cannot be built, signed or serialized."""

    pass


class PeerConnectionError(TLSConfError, ConnectionError):
    """Raised when the transport connection to a peer cannot be established."""

    pass


class NoCertificatesReceivedError(TLSConfError):
    """Raised when a peer completed the certificate exchange without certificates."""

    pass


class UnexpectedHandshakeSuccessError(TLSConfError):
    """Raised when a handshake with an always-rejecting verifier succeeded."""

    pass


class DecodeError(TLSConfError):
    """Raised when certificate data is neither valid PEM nor valid DER."""

    pass


class FileReadError(TLSConfError):
    """Raised when a certificate or key file cannot be read."""

    pass


class SystemTrustUnavailableError(TLSConfError):
    """Raised when the system trust store cannot be read."""

    pass
