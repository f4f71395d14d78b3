from __future__ import annotations

import concurrent.futures
import json
import logging
import threading
import time
import urllib.parse
from dataclasses import dataclass
from typing import Any, Collection, Dict, List, Mapping, Optional, Tuple

import requests

from .call_log import CallHistory, CallRecord
from .config import FETCH_TIMEOUT

logger = logging.getLogger(__name__)

_BODY_PREVIEW_LIMIT = 500
_READ_CHUNK = 8192


class UpstreamError(Exception):
    """Base class for failures talking to the upstream API."""


class TransportError(UpstreamError):
    """The request never produced an HTTP response."""


class UpstreamStatusError(UpstreamError):
    def __init__(self, status: int, body: str = "", message: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        super().__init__(message or f"API request failed with status {status}: {_truncate_text(body)}")


class InvalidTokenError(UpstreamStatusError):
    def __init__(self, body: str = "") -> None:
        super().__init__(401, body, "unauthorized - invalid token")


class PayloadError(UpstreamError):
    """The upstream body could not be decoded into the expected shape."""


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    content: bytes
    duration: float

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


def _truncate_text(value: str, limit: int = _BODY_PREVIEW_LIMIT) -> str:
    if not isinstance(value, str):
        return ""
    if len(value) <= limit:
        return value
    return value[:limit] + "... [truncated]"


def _safe_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for key, val in headers.items():
        if key.lower() == "authorization":
            out[key] = "Bearer <redacted>"
        else:
            out[key] = val
    return out


def _log_json(prefix: str, text: str) -> None:
    try:
        payload: Any = json.loads(text)
        logger.debug("%s\n%s", prefix, json.dumps(payload, indent=2, ensure_ascii=False))
    except ValueError:
        logger.debug("%s\n%s", prefix, text)


def _describe_transport_error(exc: Exception, timeout: float) -> str:
    if isinstance(exc, (requests.Timeout, TimeoutError)):
        return f"timeout after {timeout:g}s: {exc}"
    return f"{type(exc).__name__}: {exc}"


class UpstreamClient:
    """Performs upstream HTTP calls and records each one in a CallHistory."""

    def __init__(
        self,
        history: CallHistory,
        *,
        session: Optional[requests.Session] = None,
        verbose: bool = False,
    ) -> None:
        self.history = history
        self.session = session if session is not None else requests.Session()
        self.verbose = bool(verbose)

    def perform(
        self,
        method: str,
        url: str,
        token: str,
        *,
        body: Mapping[str, str] | str | None = None,
        timeout: float = FETCH_TIMEOUT,
        expected_status: Optional[Collection[int]] = (200,),
    ) -> UpstreamResponse:
        """Issue one request and append exactly one CallRecord for it.

        ``expected_status`` is the set of statuses the calling operation
        treats as success; ``None`` accepts any response. A rejected status
        is recorded with its raw body and raised as ``UpstreamStatusError``
        (``InvalidTokenError`` for 401). Transport failures are recorded
        with status 0 and raised as ``TransportError``.
        """
        method = method.upper()
        if isinstance(body, Mapping):
            request_body = urllib.parse.urlencode(body)
        else:
            request_body = body or ""

        headers = {"Authorization": f"Bearer {token}"}
        if body is not None:
            headers["Content-Type"] = "application/x-www-form-urlencoded"
        logged_headers = _safe_headers(headers)

        if self.verbose and request_body:
            _log_json(f"OUTBOUND >> {method} {url}", request_body)

        # requests' timeout bounds each socket operation, not the whole call,
        # so the exchange runs on its own thread under a hard deadline.
        cancelled = threading.Event()
        future: concurrent.futures.Future = concurrent.futures.Future()
        data = request_body if body is not None else None

        def run() -> None:
            try:
                future.set_result(self._exchange(method, url, headers, data, timeout, cancelled))
            except Exception as exc:
                future.set_exception(exc)

        started = time.perf_counter()
        threading.Thread(target=run, daemon=True, name="gumdash-upstream").start()
        try:
            status, content = future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            cancelled.set()
            duration = max(0.0, time.perf_counter() - started)
            error = f"timeout after {timeout:g}s: no complete response"
            self._record(method, url, 0, duration, error, request_body, "", logged_headers)
            raise TransportError(error) from None
        except (requests.RequestException, ValueError, OSError) as exc:
            # ValueError covers headers http.client cannot encode (non latin-1 tokens).
            duration = max(0.0, time.perf_counter() - started)
            error = _describe_transport_error(exc, timeout)
            self._record(method, url, 0, duration, error, request_body, "", logged_headers)
            raise TransportError(error) from exc
        duration = max(0.0, time.perf_counter() - started)

        response_body = content.decode("utf-8", errors="replace")
        if self.verbose:
            _log_json(f"INBOUND << {status} {url}", response_body)

        if expected_status is not None and status not in expected_status:
            err: UpstreamStatusError
            if status == 401:
                err = InvalidTokenError(response_body)
            else:
                err = UpstreamStatusError(status, response_body)
            self._record(method, url, status, duration, str(err), request_body, response_body, logged_headers)
            raise err

        self._record(method, url, status, duration, "", request_body, response_body, logged_headers)
        return UpstreamResponse(status_code=status, content=content, duration=duration)

    def _exchange(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[str],
        timeout: float,
        cancelled: threading.Event,
    ) -> Tuple[int, bytes]:
        resp = self.session.request(method, url, headers=headers, data=data, timeout=timeout, stream=True)
        try:
            chunks: List[bytes] = []
            for chunk in resp.iter_content(chunk_size=_READ_CHUNK):
                if cancelled.is_set():
                    break
                chunks.append(chunk)
            return int(resp.status_code), b"".join(chunks)
        finally:
            resp.close()

    def _record(
        self,
        method: str,
        url: str,
        status: int,
        duration: float,
        error: str,
        request_body: str,
        response_body: str,
        headers: Dict[str, str],
    ) -> None:
        record = CallRecord(
            method=method,
            url=url,
            status=status,
            duration=duration,
            error=error,
            request_body=request_body,
            response_body=response_body,
            headers=dict(headers),
        )
        self.history.append(record)
        if error:
            logger.warning("%s %s -> %s in %d ms: %s", method, url, status, record.duration_ms, error)
        else:
            logger.info("%s %s -> %s in %d ms", method, url, status, record.duration_ms)
