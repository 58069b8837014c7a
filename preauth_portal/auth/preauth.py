"""
Preauth token generation.

The receiving mail server recomputes the same HMAC with the shared key, so
the signing string, digest and encoding below are fixed by its protocol:

    preauth = hex(HMAC-SHA1(key, "account|by|expires|timestamp"))

``expires`` "0" means the token carries no fixed expiry of its own; the
server then applies its own acceptance window to ``timestamp``.
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Callable
from urllib.parse import quote

from ..models import Tenant

DEFAULT_BY = "name"
DEFAULT_EXPIRES = "0"


@dataclass(frozen=True)
class PreauthToken:
    account: str
    by: str
    expires: str
    timestamp: str
    preauth: str


def current_timestamp_millis() -> str:
    return str(time.time_ns() // 1_000_000)


def compute_preauth(
    account: str,
    timestamp: str,
    secret: str,
    by: str = DEFAULT_BY,
    expires: str = DEFAULT_EXPIRES,
) -> str:
    """
    Sign ``account|by|expires|timestamp`` with HMAC-SHA1.

    Returns:
        Lowercase hexadecimal digest
    """
    message = f"{account}|{by}|{expires}|{timestamp}"
    return hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha1,
    ).hexdigest()


def issue_token(
    account: str,
    secret: str,
    clock: Callable[[], str] = current_timestamp_millis,
) -> PreauthToken:
    """Sign a token for ``account`` with a timestamp taken now."""
    timestamp = clock()
    return PreauthToken(
        account=account,
        by=DEFAULT_BY,
        expires=DEFAULT_EXPIRES,
        timestamp=timestamp,
        preauth=compute_preauth(account, timestamp, secret),
    )


def build_preauth_url(base_url: str, token_path: str, token: PreauthToken) -> str:
    # only RFC 3986 unreserved characters stay literal ('@' becomes %40)
    params = [
        ("account", token.account),
        ("by", token.by),
        ("expires", token.expires),
        ("timestamp", token.timestamp),
        ("preauth", token.preauth),
    ]
    query = "&".join(f"{name}={quote(value, safe='')}" for name, value in params)
    return f"{base_url}{token_path}?{query}"


def build_redirect(
    tenant: Tenant,
    account: str,
    clock: Callable[[], str] = current_timestamp_millis,
) -> str:
    """Issue a fresh token for ``account`` on ``tenant`` and return its URL."""
    token = issue_token(account, tenant.secret.get_secret_value(), clock=clock)
    return build_preauth_url(tenant.base_url, tenant.token_path, token)
