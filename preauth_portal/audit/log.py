"""
Login attempt ledger.

Append-only JSON Lines file, one record per completed login call. Appends
are serialized with an asyncio.Lock and written as a single line each, so
concurrent requests never interleave partial records.

A failed append never propagates into the login path. The record is handed
to the ``preauth_portal.audit.fallback`` logger instead, so it still reaches
the process log.
"""

import asyncio
import json
import logging
from collections import deque
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from ..models import LoginAttempt

logger = logging.getLogger(__name__)
fallback_logger = logging.getLogger("preauth_portal.audit.fallback")


class AuditLog:
    """
    JSONL-backed audit sink.

    Args:
        path: Ledger file; parent directories are created on first append
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def append(self, entry: Union[LoginAttempt, Mapping[str, Any]]) -> bool:
        """
        Append one record atomically.

        Returns:
            True when written to the ledger, False when it went to the
            fallback logger
        """
        record = entry.to_record() if isinstance(entry, LoginAttempt) else dict(entry)
        try:
            line = json.dumps(record, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Audit record not serializable: {e}")
            fallback_logger.error(repr(record))
            return False

        async with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.error(
                    f"Audit append failed, using fallback sink: {e}",
                    extra={"audit_path": str(self.path)},
                )
                fallback_logger.error(line)
                return False

        return True

    def tail(self, limit: int = 200) -> List[Dict[str, Any]]:
        """
        Last ``limit`` records, newest first.

        Lines that are not valid JSON objects are skipped.
        """
        if limit <= 0 or not self.path.is_file():
            return []

        try:
            with open(self.path, encoding="utf-8", errors="replace") as f:
                lines = deque((line for line in f if line.strip()), maxlen=limit)
        except OSError as e:
            logger.error(f"Cannot read audit log: {e}", extra={"audit_path": str(self.path)})
            return []

        records: List[Dict[str, Any]] = []
        for line in reversed(lines):
            try:
                record = json.loads(line)
            except ValueError:
                continue
            if isinstance(record, dict):
                records.append(record)
        return records
