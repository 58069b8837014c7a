"""
Read-side aggregation over audit records.

compute_stats() is a pure reducer: same records and ``now`` give the same
result, nothing is written, and records it cannot make sense of are skipped.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Mapping, Optional

from ..models import AuditStats

LAST24_WINDOW = timedelta(hours=24)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string -> aware datetime (naive values are taken as UTC)."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def tenant_bucket(record: Mapping[str, Any]) -> str:
    """Winning tenant, else the first tenant tried, else 'unknown'."""
    chosen = record.get("chosenTenantKey")
    if isinstance(chosen, str) and chosen:
        return chosen
    attempted = record.get("attemptedTenantKeys")
    if isinstance(attempted, list) and attempted and isinstance(attempted[0], str):
        return attempted[0]
    return "unknown"


def compute_stats(records: Iterable[Any], now: Optional[datetime] = None) -> AuditStats:
    """
    Aggregate login records.

    Args:
        records: Audit records (dicts as returned by AuditLog.tail)
        now: Reference time for the 24-hour window; defaults to current UTC

    Returns:
        AuditStats with overall, last-24h and per-tenant / per-domain counts
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - LAST24_WINDOW
    stats = AuditStats()

    for record in records:
        if not isinstance(record, Mapping):
            continue
        result = record.get("result")
        if result not in ("ok", "fail"):
            continue

        stats.total += 1
        if result == "ok":
            stats.ok += 1

        tenant = tenant_bucket(record)
        stats.by_tenant[tenant] = stats.by_tenant.get(tenant, 0) + 1

        domain = record.get("domain")
        domain = domain if isinstance(domain, str) and domain else "unknown"
        stats.by_domain[domain] = stats.by_domain.get(domain, 0) + 1

        timestamp = parse_timestamp(record.get("timestamp"))
        if timestamp is not None and timestamp >= cutoff:
            stats.last24_total += 1
            if result == "ok":
                stats.last24_ok += 1

    stats.fail = stats.total - stats.ok
    stats.last24_fail = stats.last24_total - stats.last24_ok
    return stats
