from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional
from urllib import request as urlrequest

from exclog.errors import ConnectionStringError
from exclog.telemetry.records import ExceptionRecord

logger = logging.getLogger(__name__)

DEFAULT_INGESTION_ENDPOINT = "https://dc.services.visualstudio.com"
TRACK_PATH = "/v2/track"


def parse_connection_string(connection_string: str) -> Dict[str, str]:
    """Parse `Key=Value;Key=Value` into a dict with lower-cased keys."""
    out: Dict[str, str] = {}
    for part in str(connection_string or "").split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ConnectionStringError(f"connection string segment without '=': {part!r}")
        k, v = part.split("=", 1)
        out[k.strip().lower()] = v.strip()
    if not out.get("instrumentationkey"):
        raise ConnectionStringError("connection string is missing InstrumentationKey")
    return out


class HttpForwardHandle:
    """Buffers exception envelopes; a background thread POSTs them to the ingestion endpoint."""

    name = "remote"

    def __init__(
        self,
        *,
        endpoint: str,
        instrumentation_key: str,
        max_batch_size: int = 50,
        timeout_s: float = 3.0,
        flush_interval_ms: int = 1000,
    ) -> None:
        self.endpoint = str(endpoint or "").strip()
        self.instrumentation_key = instrumentation_key
        self.max_batch_size = max(1, int(max_batch_size))
        self.timeout_s = float(timeout_s)
        self.flush_interval_ms = max(50, int(flush_interval_ms))
        self.loaded = False
        self._buffer: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        # Serializes POSTs so batches leave in send order.
        self._post_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def load(self) -> None:
        self.loaded = True
        if self._thread is None:
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="exclog-remote-flusher", daemon=True)
            self._thread.start()
        logger.info(
            "[exclog/remote] handle loaded endpoint=%s flush_interval_ms=%d",
            self.endpoint,
            self.flush_interval_ms,
        )

    def _envelope(self, record: ExceptionRecord) -> Dict[str, Any]:
        data = record.to_dict()
        return {
            "name": "Microsoft.ApplicationInsights.Exception",
            "time": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime()) + "Z",
            "iKey": self.instrumentation_key,
            "data": {
                "baseType": "ExceptionData",
                "baseData": {
                    "ver": 2,
                    "exceptions": [
                        {
                            "typeName": data["exception"]["type"],
                            "message": data["exception"]["message"],
                            "hasFullStack": bool(data["exception"].get("stack")),
                            "stack": data["exception"].get("stack", ""),
                        }
                    ],
                    "severityLevel": data["severityLevel"],
                    "properties": {k: str(v) for k, v in data["properties"].items()},
                },
            },
        }

    def send(self, record: ExceptionRecord) -> None:
        """Fast, non-blocking enqueue; a full batch only wakes the flusher."""
        with self._lock:
            self._buffer.append(self._envelope(record))
            full = len(self._buffer) >= self.max_batch_size
        if full:
            self._wake.set()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._wake.wait(timeout=self.flush_interval_ms / 1000.0)
                self._wake.clear()
                if self._stop.is_set():
                    break
                self._post_buffered()
            except Exception:
                logger.error("[exclog/remote] flush loop crashed", exc_info=True)

    def flush(self) -> None:
        """Forced send of everything buffered on the handle (blocking, used on teardown)."""
        self._post_buffered()

    def close(self) -> None:
        self._stop.set()
        self._wake.set()
        t, self._thread = self._thread, None
        if t is not None and t.is_alive():
            t.join(timeout=max(0.1, self.timeout_s))
        self._post_buffered()

    def _post_buffered(self) -> None:
        with self._post_lock:
            with self._lock:
                batch, self._buffer = self._buffer, []
            if not batch or not self.endpoint:
                return
            body = json.dumps(batch, ensure_ascii=False).encode("utf-8")
            req = urlrequest.Request(
                self.endpoint,
                data=body,
                headers={"Content-Type": "application/json; charset=utf-8"},
                method="POST",
            )
            try:
                with urlrequest.urlopen(req, timeout=self.timeout_s) as resp:
                    _ = resp.read(32)
            except Exception as e:
                # Best-effort; the host never sees transport failures.
                logger.warning("[exclog/remote] forward failed: %s endpoint=%s items=%d", e, self.endpoint, len(batch))


class HttpForwardBackend:
    name = "remote"

    async def create(self, config: Mapping[str, Any]) -> HttpForwardHandle:
        parts = parse_connection_string(str(config.get("connection_string") or ""))
        base = str(config.get("endpoint_url") or parts.get("ingestionendpoint") or DEFAULT_INGESTION_ENDPOINT)
        return HttpForwardHandle(
            endpoint=base.rstrip("/") + TRACK_PATH,
            instrumentation_key=parts["instrumentationkey"],
            max_batch_size=int(config.get("max_batch_size") or 50),
            timeout_s=float(config.get("timeout_s") or 3.0),
            flush_interval_ms=int(config.get("flush_interval_ms") or 1000),
        )
