"""OpenTelemetry metrics for the tlsconf module."""

from collections.abc import Iterator

from opentelemetry import metrics

# Get meter for tlsconf module
meter = metrics.get_meter("tlsconf")

# ============================================================================
# Certificate generation
# ============================================================================

certificates_generated_total = meter.create_counter(
    name="tlsconf_certificates_generated_total",
    description="Total ephemeral certificates generated",
    unit="1",
)

certificate_generation_failures_total = meter.create_counter(
    name="tlsconf_certificate_generation_failures_total",
    description="Total failed ephemeral certificate generations",
    unit="1",
)

certificate_generation_duration = meter.create_histogram(
    name="tlsconf_certificate_generation_duration_seconds",
    description="Ephemeral certificate generation duration in seconds",
    unit="s",
)

# ============================================================================
# Trust pool
# ============================================================================

peer_fetches_total = meter.create_counter(
    name="tlsconf_peer_fetches_total",
    description="Total peer certificate fetches",
    unit="1",
)

trust_pool_sources_total = meter.create_counter(
    name="tlsconf_trust_pool_sources_total",
    description="Total trust pool sources applied",
    unit="1",
)

# ============================================================================
# Option pipeline
# ============================================================================

option_pipeline_runs_total = meter.create_counter(
    name="tlsconf_option_pipeline_runs_total",
    description="Total option pipeline runs",
    unit="1",
)

# Bound settings gauge - one observation per role with a bound certificate count
_bound_certificates: dict[str, int] = {}


def _get_bound_certificates(
    options: metrics.CallbackOptions,
) -> Iterator[metrics.Observation]:
    """Callback to report bound certificate counts per role."""
    for role, count in _bound_certificates.items():
        yield metrics.Observation(count, {"role": role})


bound_certificates_gauge = meter.create_observable_gauge(
    name="tlsconf_bound_certificates",
    description="Certificates in the currently bound settings per role",
    unit="1",
    callbacks=[_get_bound_certificates],
)


class TLSConfMetrics:
    """Facade for tlsconf metrics with proper labels."""

    def record_certificate_generated(self, algorithm: str, duration_seconds: float) -> None:
        """Record certificate generation with duration. Labels: algorithm"""
        certificates_generated_total.add(1, {"algorithm": algorithm})
        certificate_generation_duration.record(duration_seconds, {"algorithm": algorithm})

    def record_certificate_generation_failed(self, algorithm: str) -> None:
        """Record a failed certificate generation."""
        certificate_generation_failures_total.add(1, {"algorithm": algorithm})

    def record_peer_fetch(self, result: str) -> None:
        """Record peer fetch. Labels: result=collected|error"""
        peer_fetches_total.add(1, {"result": result})

    def record_trust_pool_source(self, kind: str) -> None:
        """Record a trust pool source. Labels: kind=empty|bytes|file|peer|bound"""
        trust_pool_sources_total.add(1, {"kind": kind})

    def record_option_pipeline_run(self, role: str, result: str) -> None:
        """Record option pipeline run. Labels: role=client|server, result=ok|error"""
        option_pipeline_runs_total.add(1, {"role": role, "result": result})

    def record_settings_bound(self, role: str, certificate_count: int) -> None:
        """Record the certificate count of newly bound settings."""
        _bound_certificates[role] = certificate_count


# Singleton instance
tlsconf_metrics = TLSConfMetrics()
