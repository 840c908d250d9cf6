"""reqchain executor - HTTP request execution."""

import time
from collections.abc import Mapping

import requests
from urllib3 import HTTPHeaderDict

from reqchain.errors import NetworkError, PayloadError
from reqchain.payload import Payload


class CallResult:
    """Result of an HTTP call."""

    def __init__(self):
        self.status_code: int = 0
        self.reason: str = ""
        self.headers: list[tuple[str, str]] = []  # duplicates and order preserved
        self.content: bytes = b""
        self.content_type: str = "text/plain"
        self.elapsed_ms: float = 0

    def header(self, name: str) -> str | None:
        """First header value whose name matches, compared case-insensitively."""
        lower = name.lower()
        for key, value in self.headers:
            if key.lower() == lower:
                return value
        return None


def execute_call(
    method: str,
    url: str,
    headers: Mapping[str, str] | None = None,
    payload: Payload | None = None,
) -> CallResult:
    """Execute one HTTP request and return a structured result.

    - No timeout, retry or redirect settings beyond requests' defaults
    - The payload's content type replaces any Content-Type header
    - Transport failures raise NetworkError; HTTP error statuses do not
    - Headers or a URL that can't be encoded raise PayloadError
    """
    req_headers = dict(headers) if headers else {}
    data = None
    if payload is not None:
        for key in [k for k in req_headers if k.lower() == "content-type"]:
            del req_headers[key]
        data, content_type = payload.encode()
        req_headers["Content-Type"] = content_type

    try:
        start = time.monotonic()
        resp = requests.request(method=method.upper(), url=url, headers=req_headers, data=data)
        elapsed_ms = (time.monotonic() - start) * 1000
    except requests.exceptions.ConnectionError as e:
        raise NetworkError(f"Connection error: {e}") from e
    except requests.exceptions.RequestException as e:
        raise NetworkError(f"Request failed: {e}") from e
    except (ValueError, UnicodeError) as e:
        # http.client sends header values as latin-1
        raise PayloadError(f"Can't encode request: {e}") from e

    result = CallResult()
    result.status_code = resp.status_code
    result.reason = resp.reason or ""
    result.headers = _header_pairs(resp)
    result.content = resp.content or b""
    result.content_type = resp.headers.get("Content-Type") or "text/plain"
    result.elapsed_ms = elapsed_ms
    return result


def _header_pairs(resp) -> list[tuple[str, str]]:
    """Response headers as (name, value) pairs.

    requests folds repeated headers into one comma-joined value; the
    underlying urllib3 header dict still has them separately.
    """
    raw_headers = getattr(resp.raw, "headers", None)
    if isinstance(raw_headers, HTTPHeaderDict):
        return list(raw_headers.iteritems())
    return list(resp.headers.items())
