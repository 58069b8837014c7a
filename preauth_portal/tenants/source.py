"""
Tenant configuration sources.

A tenant source is the read-through accessor the failover controller calls at
the start of every login: ``load()`` returns a fresh, immutable
TenantSnapshot reflecting the current external state. Nothing is cached
between calls, so admin edits take effect on the next request.

Two implementations:
- StaticTenantSource: in-memory tenants (tests, embedding)
- IniTenantStore (store.py): the INI file named by CONFIG_PATH
"""

import logging
from typing import Iterable, Protocol

from ..models import Tenant, TenantSnapshot

logger = logging.getLogger(__name__)


class TenantSource(Protocol):
    """Interface for anything that can produce a tenant snapshot."""

    def load(self) -> TenantSnapshot: ...


class StaticTenantSource:
    """
    Tenant source backed by a fixed list of tenants.

    ``replace()`` swaps the whole list atomically; readers holding an older
    snapshot keep using it.
    """

    def __init__(self, tenants: Iterable[Tenant] = (), default_domain: str = ""):
        self._snapshot = TenantSnapshot(
            tenants=tuple(tenants),
            default_domain=default_domain.strip().lower(),
        )

    def load(self) -> TenantSnapshot:
        return self._snapshot

    def replace(self, tenants: Iterable[Tenant], default_domain: str = "") -> None:
        self._snapshot = TenantSnapshot(
            tenants=tuple(tenants),
            default_domain=default_domain.strip().lower(),
        )
        logger.info("Tenant snapshot replaced", extra={"tenant_count": len(self._snapshot.tenants)})
