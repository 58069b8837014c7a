"""
Admin Package

Token-guarded operator API: tenant CRUD, tenant connection tests, and
read access to the login audit log.
"""

from .routes import admin_router

__all__ = [
    "admin_router",
]
