from .log import AuditLog
from .stats import compute_stats

__all__ = [
    "AuditLog",
    "compute_stats",
]
