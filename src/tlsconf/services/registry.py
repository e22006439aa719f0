"""Configuration registry holding the bound TLS settings per endpoint role."""

import logging
import threading

from tlsconf.domain.settings import TLSSettings
from tlsconf.domain.states import TLSRole
from tlsconf.metrics import tlsconf_metrics

logger = logging.getLogger(__name__)


class ConfigRegistry:
    """Owned store of the currently bound ``TLSSettings``, one per role.

    A new registry starts with empty settings bound for every role, so
    lookups always succeed. Binding replaces the previous value for the role
    in one step. Bound values are never handed out, only copies of them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bound: dict[TLSRole, TLSSettings] = {role: TLSSettings(role=role) for role in TLSRole}

    def bind(self, settings: TLSSettings) -> None:
        """Publish settings for their role, replacing the previous binding.

        The registry keeps its own copy; later changes to ``settings`` are
        not published.
        """
        published = settings.copy()
        with self._lock:
            self._bound[published.role] = published

        tlsconf_metrics.record_settings_bound(published.role.value, len(published.certificates))
        logger.info(
            "tls_settings_bound",
            extra={
                "role": published.role.value,
                "certificates": len(published.certificates),
                "trust_pool": len(published.trust_pool) if published.trust_pool is not None else -1,
                "insecure_skip_verify": published.insecure_skip_verify,
            },
        )

    def lookup(self, role: TLSRole) -> TLSSettings:
        """Get a copy of the settings currently bound for ``role``.

        Changing the returned value never changes the binding.
        """
        with self._lock:
            published = self._bound[role]
        return published.copy()


# Process-wide default registry, used when callers do not pass their own
default_registry = ConfigRegistry()
