import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger("storeops")


class IntegrationCallLogger:
    """Keeps the most recent outbound WooCommerce/Shippo calls in memory.

    Entries are surfaced on the admin integration log endpoint, so anything
    that looks like a credential is masked before it is stored.
    """

    SENSITIVE_KEYS = (
        "consumer_key",
        "consumer_secret",
        "authorization",
        "api_key",
        "token",
        "access_token",
    )

    def __init__(self, max_entries: int = 500):
        self.entries: List[Dict[str, Any]] = []
        self.max_entries = max_entries

    def record(
        self,
        provider: str,
        method: str,
        url: str,
        status_code: Optional[int] = None,
        started_at: Optional[float] = None,
        params: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        duration_ms = None
        if started_at is not None:
            duration_ms = round((time.monotonic() - started_at) * 1000, 1)

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "provider": provider,
            "method": method,
            "url": url,
            "params": self.sanitize(params) if params else None,
            "status_code": status_code,
            "duration_ms": duration_ms,
            "error": error,
        }
        self.entries.append(entry)
        if len(self.entries) > self.max_entries:
            self.entries.pop(0)

        msg = f"[{provider}] {method} {url} -> {status_code}"
        if error:
            logger.warning(f"{msg} error={error}")
        else:
            logger.debug(msg)
        return entry

    def sanitize(self, data: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = dict(data)
        for key in list(sanitized.keys()):
            if str(key).lower() not in self.SENSITIVE_KEYS:
                continue
            value = str(sanitized[key])
            if len(value) > 8:
                sanitized[key] = f"{value[:4]}...{value[-4:]}"
            else:
                sanitized[key] = "***"
        return sanitized

    def get_entries(self, limit: Optional[int] = None, provider: Optional[str] = None) -> list:
        entries = self.entries
        if provider:
            entries = [e for e in entries if e["provider"] == provider]
        if limit:
            return entries[-limit:]
        return list(entries)

    def clear(self):
        self.entries = []
        logger.info("Cleared integration call log")


integration_log = IntegrationCallLogger()
