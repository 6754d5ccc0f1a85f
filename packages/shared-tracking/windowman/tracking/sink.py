"""Event sinks - destinations for assembled event records.

- DataLayerSink: in-memory list, the server-side stand-in for a tag
  manager data layer; also what tests assert against
- LoggingSink: writes each record to the log for local diagnostics
- HttpSink: POSTs each record as JSON to a collector endpoint
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from windowman.tracking.exceptions import SinkError

logger = logging.getLogger(__name__)

# HTTP timeouts (in seconds)
COLLECTOR_TIMEOUT = httpx.Timeout(5.0, connect=2.0)  # 5s read, 2s connect


class EventSink(ABC):
    """Destination for event records."""

    @abstractmethod
    def push(self, record: dict[str, Any]) -> None:
        """Deliver one record.

        Args:
            record: The fully assembled event record.

        Raises:
            SinkError: If the record cannot be delivered.
        """
        pass


class DataLayerSink(EventSink):
    """Keep records in an ordered in-memory list.

    Example:
        >>> sink = DataLayerSink()
        >>> sink.push({"event": "page_view", "meta": {"category": "rt"}})
        >>> sink.find("page_view")[0]["meta"]["category"]
        'rt'
    """

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def push(self, record: dict[str, Any]) -> None:
        self.records.append(dict(record))

    def find(self, event_name: str) -> list[dict[str, Any]]:
        """Return every record with the given event name, oldest first."""
        return [r for r in self.records if r.get("event") == event_name]

    def by_category(self, category: str) -> list[dict[str, Any]]:
        """Return every record whose ``meta.category`` matches."""
        return [r for r in self.records if r.get("meta", {}).get("category") == category]

    def clear(self) -> None:
        self.records.clear()

    def __len__(self) -> int:
        return len(self.records)


class LoggingSink(EventSink):
    """Write records to a logger at INFO level."""

    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logger

    def push(self, record: dict[str, Any]) -> None:
        self.log.info(f"[wm_tracking] {record.get('event')}: {json.dumps(record, default=str)}")


class HttpSink(EventSink):
    """Forward records to an HTTP collector.

    Example:
        sink = HttpSink("https://collector.example.com/track")
        sink.push({"event": "wm_lead", ...})
        sink.close()
    """

    def __init__(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ):
        """Initialize HTTP sink.

        Args:
            url: Collector endpoint.
            headers: Extra request headers (e.g. an API key).
            client: Optional preconfigured client. Created lazily if not
                provided.
        """
        self.url = url
        self.headers = headers or {}
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=COLLECTOR_TIMEOUT)
        return self._client

    def push(self, record: dict[str, Any]) -> None:
        try:
            response = self.client.post(self.url, json=record, headers=self.headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SinkError(
                f"Collector rejected {record.get('event')}: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise SinkError(f"Collector unreachable for {record.get('event')}: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> HttpSink:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
