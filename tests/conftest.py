"""Shared fixtures for reqchain tests."""

import json

import pytest
import yaml
from click.testing import CliRunner

from reqchain import core
from reqchain.executor import CallResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def global_reqchain_dir(tmp_path, monkeypatch):
    """Override the global ~/.reqchain directory to a temp location."""
    fake_global = tmp_path / "fake_home" / ".reqchain"
    fake_global.mkdir(parents=True)
    monkeypatch.setattr(core, "GLOBAL_DIR", fake_global)
    monkeypatch.setattr(core, "GLOBAL_CONFIG", fake_global / "config.yaml")
    monkeypatch.setenv("EDITOR", "")
    return fake_global


def make_workspace(
    root,
    name="shop",
    calls=None,
    variables=None,
    vars_name="dev",
    extracted=None,
    current=True,
):
    """Write a workspace directory by hand: calls.yaml, state, one variable set."""
    wdir = root / name
    (wdir / "bodies").mkdir(parents=True, exist_ok=True)
    (wdir / "calls.yaml").write_text(yaml.safe_dump(calls or {}, sort_keys=False))
    (wdir / f"{name}.yaml").write_text(
        yaml.safe_dump(
            {
                "current_vars": vars_name if current else "",
                "extracted_vars": extracted or {},
            },
        ),
    )
    lines = [f"{k}={v}" for k, v in (variables or {}).items()]
    (wdir / f"{vars_name}.env").write_text("\n".join(lines) + "\n")
    return wdir


def select_workspace(root, name="shop", **settings):
    """Write config.yaml with name as the current workspace."""
    data = {"current_workspace": name, "editor": "", **settings}
    (root / "config.yaml").write_text(yaml.safe_dump(data))


def make_call_result(
    status_code=200,
    body=None,
    headers=None,
    content_type=None,
    reason="OK",
    elapsed_ms=42.0,
):
    """Factory for CallResult objects.

    body may be a dict/list (sent as JSON), str or bytes. headers may be a
    dict or a list of (name, value) pairs.
    """
    r = CallResult()
    r.status_code = status_code
    r.reason = reason
    if isinstance(body, dict | list):
        r.content = json.dumps(body).encode()
        content_type = content_type or "application/json"
    elif isinstance(body, str):
        r.content = body.encode()
    else:
        r.content = body or b""
    pairs = list(headers.items()) if isinstance(headers, dict) else list(headers or [])
    if content_type:
        pairs.insert(0, ("Content-Type", content_type))
    r.headers = pairs
    r.content_type = content_type or "text/plain"
    r.elapsed_ms = elapsed_ms
    return r
