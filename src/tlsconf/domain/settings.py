"""TLS settings value mutated by the option pipeline and bound per role."""

import ssl
from dataclasses import dataclass, field

from tlsconf.certs.crypto import CertificateKeyPair
from tlsconf.certs.storage import load_cert_chain
from tlsconf.domain.states import TLSRole
from tlsconf.trust.pool import TrustPool


@dataclass
class TLSSettings:
    """Certificates and trust roots for one endpoint role.

    Attributes:
        role: Whether these are client or server settings.
        certificates: Identity certificates (server identity, or client
            certificates for mutual TLS).
        trust_pool: Roots used to verify the peer. None means the platform's
            default roots (client) or no peer verification (server).
        insecure_skip_verify: Client only, skip peer verification entirely.
    """

    role: TLSRole
    certificates: list[CertificateKeyPair] = field(default_factory=list)
    trust_pool: TrustPool | None = None
    insecure_skip_verify: bool = False

    def copy(self) -> "TLSSettings":
        """Get an independent working copy."""
        return TLSSettings(
            role=self.role,
            certificates=list(self.certificates),
            trust_pool=self.trust_pool.copy() if self.trust_pool is not None else None,
            insecure_skip_verify=self.insecure_skip_verify,
        )

    def ssl_context(self) -> ssl.SSLContext:
        """Build an ``ssl.SSLContext`` for this role."""
        if self.role == TLSRole.SERVER:
            return self._server_context()
        return self._client_context()

    def _client_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if self.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        elif self.trust_pool is None:
            context.load_default_certs(ssl.Purpose.SERVER_AUTH)
        else:
            # Trusted leaf certificates need not chain up to a self-signed root
            context.verify_flags |= ssl.VERIFY_X509_PARTIAL_CHAIN
            self.trust_pool.load_into(context)
        for key_pair in self.certificates:
            load_cert_chain(context, key_pair)
        return context

    def _server_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        for key_pair in self.certificates:
            load_cert_chain(context, key_pair)
        if self.trust_pool is not None:
            context.verify_mode = ssl.CERT_REQUIRED
            context.verify_flags |= ssl.VERIFY_X509_PARTIAL_CHAIN
            self.trust_pool.load_into(context)
        return context
