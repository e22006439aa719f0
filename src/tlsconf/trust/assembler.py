"""Trust pool assembly from heterogeneous certificate sources.

Sources are applied strictly in order; later sources add to the pool, only
``EmptySource`` replaces it. The first failing source aborts the assembly.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography import x509
from opentelemetry import trace

from tlsconf.certs.crypto import decode_certificates
from tlsconf.domain.states import TLSRole
from tlsconf.errors import FileReadError
from tlsconf.metrics import tlsconf_metrics
from tlsconf.trust.fetcher import fetch_server_certificates
from tlsconf.trust.pool import TrustPool

if TYPE_CHECKING:
    from tlsconf.services.registry import ConfigRegistry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class EmptySource:
    """Replace the pool with an empty one (distrust everything so far)."""

    kind = "empty"


@dataclass(frozen=True)
class BytesSource:
    """PEM or DER encoded certificate data."""

    data: bytes
    kind = "bytes"


@dataclass(frozen=True)
class FileSource:
    """A file holding PEM or DER encoded certificates."""

    path: str | Path
    kind = "file"


@dataclass(frozen=True)
class PeerSource:
    """The unverified certificate chain of a live TLS server."""

    network: str
    address: str
    timeout: float | None = None
    kind = "peer"


@dataclass(frozen=True)
class BoundConfigSource:
    """The identity certificates already bound for another endpoint role."""

    registry: "ConfigRegistry"
    role: TLSRole = TLSRole.SERVER
    kind = "bound"


Source = EmptySource | BytesSource | FileSource | PeerSource | BoundConfigSource


def read_certificates_file(path: str | Path) -> list[x509.Certificate]:
    """Read and decode all certificates of a PEM or DER file.

    Raises:
        FileReadError: If the file cannot be read.
        DecodeError: If the content holds no parseable certificate.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise FileReadError(f"Failed to read certificates file {str(path)!r}: {e}") from e
    return decode_certificates(data)


def _certificates_of(source: Source) -> list[x509.Certificate]:
    if isinstance(source, BytesSource):
        return decode_certificates(source.data)
    if isinstance(source, FileSource):
        return read_certificates_file(source.path)
    if isinstance(source, PeerSource):
        return fetch_server_certificates(source.network, source.address, source.timeout)
    if isinstance(source, BoundConfigSource):
        settings = source.registry.lookup(source.role)
        return [key_pair.certificate for key_pair in settings.certificates]
    raise TypeError(f"Unknown trust pool source: {source!r}")


def assemble(pool: TrustPool | None, sources: Iterable[Source]) -> TrustPool:
    """Assemble a trust pool from an optional seed pool and ordered sources.

    A ``None`` pool is seeded from the system trust store as soon as a source
    adds to it; an ``EmptySource`` replaces the pool without seeding. A given
    pool is copied, never modified in place.

    Args:
        pool: The seed pool, or None for the system trust store.
        sources: Sources to apply in order.

    Returns:
        The assembled pool.

    Raises:
        SystemTrustUnavailableError: If seeding from the system store fails.
        FileReadError, DecodeError, PeerConnectionError, ...: The first
            source-specific error; remaining sources are not processed.
    """
    with tracer.start_as_current_span("assemble_trust_pool") as span:
        result = pool.copy() if pool is not None else None
        kinds = []

        for source in sources:
            kinds.append(source.kind)
            if isinstance(source, EmptySource):
                result = TrustPool()
            else:
                certificates = _certificates_of(source)
                if result is None:
                    result = TrustPool.from_system()
                added = result.extend(certificates)
                logger.debug(
                    "trust_pool_source_applied",
                    extra={"kind": source.kind, "certificates": len(certificates), "added": added},
                )
            tlsconf_metrics.record_trust_pool_source(source.kind)

        if result is None:
            result = TrustPool.from_system()

        span.set_attribute("sources", kinds)
        span.set_attribute("certificates", len(result))
        logger.info(
            "trust_pool_assembled",
            extra={"sources": kinds, "certificates": len(result)},
        )
        return result
