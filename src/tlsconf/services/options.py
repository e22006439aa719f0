"""Option pipeline for building and binding TLS settings.

An option is a callable that mutates a working ``TLSSettings`` or raises.
Options run strictly in order and the first failure aborts the run; only a
fully successful run is bound into the registry.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import timedelta
from pathlib import Path

from shared.config import settings

from tlsconf.certs.generator import generate_ephemeral_certificate
from tlsconf.certs.keys import KeyAlgorithm
from tlsconf.certs.storage import read_certificate
from tlsconf.domain.settings import TLSSettings
from tlsconf.domain.states import TLSRole
from tlsconf.metrics import tlsconf_metrics
from tlsconf.services.registry import ConfigRegistry, default_registry
from tlsconf.trust.assembler import (
    BoundConfigSource,
    BytesSource,
    EmptySource,
    FileSource,
    PeerSource,
    Source,
    assemble,
)

logger = logging.getLogger(__name__)

TLSConfigOption = Callable[[TLSSettings], None]


def apply_options(tls_settings: TLSSettings, options: Iterable[TLSConfigOption]) -> TLSSettings:
    """Apply options in order to a copy of ``tls_settings``.

    The passed settings are never modified.

    Returns:
        The mutated copy.

    Raises:
        Exception: The first option failure, unchanged; later options do not run.
    """
    working = tls_settings.copy()
    for index, option in enumerate(options):
        try:
            option(working)
        except Exception as e:
            logger.warning(
                "tls_options_failed",
                extra={
                    "role": working.role.value,
                    "option_index": index,
                    "option": _option_name(option),
                    "error": str(e),
                },
            )
            raise
    return working


def set_options(
    role: TLSRole,
    *options: TLSConfigOption,
    registry: ConfigRegistry | None = None,
) -> TLSSettings:
    """Build fresh settings for ``role`` from ``options`` and bind them.

    On failure the previously bound settings stay in effect.

    Returns:
        The settings that were bound; the registry keeps its own copy.
    """
    registry = registry or default_registry
    try:
        bound = apply_options(TLSSettings(role=TLSRole(role)), options)
    except Exception:
        tlsconf_metrics.record_option_pipeline_run(TLSRole(role).value, "error")
        raise

    registry.bind(bound)
    tlsconf_metrics.record_option_pipeline_run(bound.role.value, "ok")
    logger.info(
        "tls_options_applied",
        extra={"role": bound.role.value, "options": len(options)},
    )
    return bound


def _option_name(option: TLSConfigOption) -> str:
    return getattr(option, "__qualname__", repr(option))


# ============================================================================
# Common options
# ============================================================================


def enable_insecure_skip_verify() -> TLSConfigOption:
    """Skip verification of the peer's certificate chain and host name."""

    def option(tls_settings: TLSSettings) -> None:
        tls_settings.insecure_skip_verify = True

    return option


# ============================================================================
# Server identity options
# ============================================================================


def use_ephemeral_certificate(
    address: str,
    algorithm: KeyAlgorithm | str,
    lifetime: timedelta,
) -> TLSConfigOption:
    """Generate an ephemeral certificate for ``address`` and make it the identity."""

    def option(tls_settings: TLSSettings) -> None:
        tls_settings.certificates = [generate_ephemeral_certificate(address, algorithm, lifetime)]

    return option


def use_certificate_files(cert_path: str | Path, key_path: str | Path) -> TLSConfigOption:
    """Add a certificate/key pair read from PEM files to the identity certificates."""

    def option(tls_settings: TLSSettings) -> None:
        tls_settings.certificates.append(read_certificate(cert_path, key_path))

    return option


# ============================================================================
# Trust pool options
# ============================================================================


def _trust_option(source: Source) -> TLSConfigOption:
    def option(tls_settings: TLSSettings) -> None:
        tls_settings.trust_pool = assemble(tls_settings.trust_pool, [source])

    option.__qualname__ = f"trust_{source.kind}"
    return option


def ignore_system_certs() -> TLSConfigOption:
    """Start from an empty trust pool instead of the system trust store."""
    return _trust_option(EmptySource())


def append_certificates(data: bytes) -> TLSConfigOption:
    """Trust the PEM or DER encoded certificates in ``data``."""
    return _trust_option(BytesSource(data))


def append_certificates_file(path: str | Path) -> TLSConfigOption:
    """Trust the PEM or DER encoded certificates stored in ``path``."""
    return _trust_option(FileSource(path))


def append_peer_certificates(
    network: str,
    address: str,
    timeout: float | None = None,
) -> TLSConfigOption:
    """Trust whatever certificate chain the server at ``address`` presents.

    The dial timeout defaults to ``PEER_FETCH_TIMEOUT_SECONDS``.
    """
    if timeout is None:
        timeout = settings.PEER_FETCH_TIMEOUT_SECONDS
    return _trust_option(PeerSource(network, address, timeout))


def append_server_certificates(registry: ConfigRegistry | None = None) -> TLSConfigOption:
    """Trust the identity certificates currently bound for the server role."""
    return _trust_option(BoundConfigSource(registry or default_registry, TLSRole.SERVER))
