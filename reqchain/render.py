"""reqchain render - terminal output for requests and responses."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

import click

from reqchain.errors import ConfigurationError
from reqchain.executor import CallResult

_DURATIONS = (
    ("days", 86_400_000),
    ("hours", 3_600_000),
    ("minutes", 60_000),
    ("seconds", 1000),
    ("ms", 1),
)


def format_request(label: str, url: str, headers: Mapping[str, str] | None) -> str:
    lines = [f"-=-= REQUEST ({label})", click.style(url, fg="green")]
    for name, value in (headers or {}).items():
        lines.append(f"{click.style(name, bold=True)}: {value}")
    return "\n".join(lines)


def format_status(result: CallResult) -> str:
    status = click.style(str(result.status_code), fg="yellow", bold=True)
    if result.reason:
        return f"{status} ({result.reason})"
    return status


def format_response_head(label: str, result: CallResult) -> str:
    lines = [f"-=-= RESPONSE ({label})", format_status(result)]
    for name, value in result.headers:
        lines.append(f"{click.style(name, bold=True)}: {value}")
    return "\n".join(lines)


def body_text(result: CallResult) -> str:
    """Decoded response body, pretty-printed when it is JSON."""
    text = result.content.decode("utf-8", errors="replace")
    media_type = result.content_type.split(";")[0].strip().lower()
    if media_type.endswith("/json") or media_type.endswith("+json"):
        try:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except json.JSONDecodeError:
            return text
    return text


def body_file_extension(content_type: str) -> str:
    media_type = content_type.split(";")[0].strip().lower()
    if not media_type or media_type == "text/plain":
        return "txt"
    return media_type.rsplit("/", 1)[-1]


def timestamp_slug(now: datetime | None = None) -> str:
    """UTC timestamp usable in a file name."""
    now = now or datetime.now(timezone.utc)
    return re.sub(r"[:\-.+]", "_", now.isoformat())


def write_body_file(
    output_dir: str,
    workspace: str,
    call_name: str,
    text: str,
    content_type: str,
) -> Path:
    """Write a response body to <output_dir>/<workspace>/<call>_<timestamp>.<ext>."""
    out_dir = Path(output_dir).expanduser() / workspace
    path = out_dir / f"{call_name}_{timestamp_slug()}.{body_file_extension(content_type)}"
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Can't write response body to {path}: {e}") from e
    return path


def format_duration(ms: float) -> str:
    """Human-readable duration, e.g. '1 minute, 2 seconds, 5 ms'."""
    remaining = int(ms)
    parts: list[str] = []
    for label, size in _DURATIONS:
        if remaining >= size:
            n, remaining = divmod(remaining, size)
            if n == 1 and label != "ms":
                label = label[:-1]
            parts.append(f"{n} {label}")
    return ", ".join(parts) or "0 ms"
