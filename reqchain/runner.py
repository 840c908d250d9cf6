"""reqchain runner - resolve, build, execute, extract, persist.

A call moves through these steps in order:

  RESOLVE_VARS -> BUILD_REQUEST -> EXECUTE -> RENDER_RESPONSE
  -> EXTRACT -> PERSIST_STATE (only if something was extracted)

Anything that fails before EXTRACT raises and leaves every file untouched.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from reqchain import core, executor
from reqchain.errors import ConfigurationError
from reqchain.executor import CallResult
from reqchain.extract import ExtractionReport, apply_extracts
from reqchain.models import CallTemplate, WorkspaceState
from reqchain.payload import Payload, build_payload


class PreparedCall:
    """A call with variables resolved and its body built, ready to send."""

    def __init__(
        self,
        workspace: str,
        state: WorkspaceState,
        template: CallTemplate,
        scope: dict[str, str],
        url: str,
        headers: dict[str, str],
        payload: Payload | None,
    ):
        self.workspace = workspace
        self.state = state
        self.template = template
        self.scope = scope
        self.url = url
        self.headers = headers
        self.payload = payload

    @property
    def label(self) -> str:
        return f"{self.workspace}.{self.state.current_vars}"


class CallOutcome:
    def __init__(self, prepared: PreparedCall, result: CallResult, report: ExtractionReport):
        self.prepared = prepared
        self.result = result
        self.report = report


def resolve_scope(workspace: str, state: WorkspaceState) -> dict[str, str]:
    """Variable set selected in state, overlaid with its extracted variables."""
    if not state.current_vars:
        raise ConfigurationError(f"No current vars in workspace {workspace}")
    persisted = core.load_variable_set(workspace, state.current_vars)
    return core.merge_scope(persisted, state.extracted_vars)


def prepare_call(
    workspace: str,
    call_name: str,
    body_filename: str | None = None,
    bodies_dir: Path | None = None,
) -> PreparedCall:
    """RESOLVE_VARS and BUILD_REQUEST. No network I/O, no writes."""
    state = core.load_workspace_state(workspace)
    scope = resolve_scope(workspace, state)
    template = core.load_call_template(workspace, call_name)

    url = core.substitute_vars(template.url, scope)
    headers = {k: core.substitute_vars(v, scope) for k, v in (template.headers or {}).items()}
    payload = build_payload(
        template,
        scope,
        bodies_dir or core.bodies_dir(workspace),
        body_filename,
    )
    return PreparedCall(workspace, state, template, scope, url, headers, payload)


def run_call(
    workspace: str,
    call_name: str,
    body_filename: str | None = None,
    on_request: Callable[[PreparedCall], None] | None = None,
    on_response: Callable[[PreparedCall, CallResult], None] | None = None,
) -> CallOutcome:
    """Run one call end to end.

    on_request is called just before the request is sent and on_response
    right after it completes, before extraction.
    """
    prepared = prepare_call(workspace, call_name, body_filename)
    if on_request:
        on_request(prepared)

    result = executor.execute_call(
        prepared.template.method.value,
        prepared.url,
        prepared.headers,
        prepared.payload,
    )
    if on_response:
        on_response(prepared, result)

    report = apply_extracts(prepared.template.extracts, result, prepared.state.extracted_vars)
    if report.changed:
        core.save_workspace_state(workspace, prepared.state)
    return CallOutcome(prepared, result, report)
