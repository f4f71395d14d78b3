from __future__ import annotations

import datetime
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Deque, Dict, List, Optional

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class CallRecord:
    """One observed outbound call to the upstream API."""

    method: str
    url: str
    status: int = 0
    duration: float = 0.0
    error: str = ""
    request_body: str = ""
    response_body: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    # Filled in by CallHistory.append when left unset.
    timestamp: Optional[datetime.datetime] = None

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    @property
    def ok(self) -> bool:
        return not self.error

    def to_json(self) -> Dict[str, Any]:
        # Duration goes out in nanoseconds; the log modal divides by 1e6.
        return {
            "Timestamp": self.timestamp.isoformat() if self.timestamp else "",
            "Method": self.method,
            "URL": self.url,
            "Status": self.status,
            "Duration": int(round(self.duration * 1_000_000_000)),
            "Error": self.error,
            "RequestBody": self.request_body,
            "ResponseBody": self.response_body,
            "Headers": dict(self.headers),
        }


class CallHistory:
    """Thread-safe in-memory ring buffer of outbound API calls."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = max(1, int(capacity))
        self._records: Deque[CallRecord] = deque()
        self._lock = threading.Lock()
        self._last_stamp: Optional[datetime.datetime] = None

    def append(self, record: CallRecord) -> None:
        """Add a record, stamping it under the lock so timestamps follow insertion order."""
        with self._lock:
            if record.timestamp is None:
                now = datetime.datetime.now(datetime.timezone.utc)
                if self._last_stamp is not None and now < self._last_stamp:
                    now = self._last_stamp
                record = replace(record, timestamp=now)
            self._last_stamp = record.timestamp
            self._records.append(record)
            while len(self._records) > self.capacity:
                self._records.popleft()

    def snapshot(self) -> List[CallRecord]:
        """Return a copy of the held records, newest first."""
        with self._lock:
            rows = list(self._records)
        rows.reverse()
        return rows

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
