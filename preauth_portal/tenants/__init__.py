"""
Tenants Package

Tenant registry access for the portal.

Modules:
- source: TenantSource protocol and the in-memory StaticTenantSource
- store: INI-backed tenant store, also the admin config mutator
"""

from .source import StaticTenantSource, TenantSource
from .store import IniTenantStore, build_tenant

__all__ = [
    "TenantSource",
    "StaticTenantSource",
    "IniTenantStore",
    "build_tenant",
]
