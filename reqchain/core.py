"""reqchain core - workspace storage and variable resolution."""

import os
import re
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, set_key
from pydantic import ValidationError

from reqchain.errors import ConfigurationError
from reqchain.models import CallTemplate, GlobalConfig, WorkspaceState

GLOBAL_DIR = Path(os.environ.get("REQCHAIN_HOME", Path.home() / ".reqchain")).expanduser()
GLOBAL_CONFIG = GLOBAL_DIR / "config.yaml"

CALLS_FILE = "calls.yaml"
BODIES_DIR = "bodies"
VARS_EXT = ".env"

# {name} where name is anything but braces; unknown names are left alone
_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")
# names worth seeding into a new variable set
_VAR_NAME_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_.\-]*)\}")


# ── Variable scope ───────────────────────────────────────────────────────


def merge_scope(
    persisted: Mapping[str, str],
    extracted: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge a variable set with extracted variables.

    Extracted values shadow persisted values with the same name.
    """
    scope = dict(persisted)
    if extracted:
        scope.update(extracted)
    return scope


def substitute_vars(text: str, scope: Mapping[str, str]) -> str:
    """Replace ``{name}`` tokens with values from scope.

    Tokens whose name is not in scope are left verbatim, so a partially
    configured template can still be inspected. Replacement is a single
    pass: values containing ``{x}`` are not expanded again.
    """
    if not text:
        return text

    def _replace(m: re.Match) -> str:
        return scope.get(m.group(1), m.group(0))

    return _PLACEHOLDER_RE.sub(_replace, text)


def find_placeholders(text: str | None) -> list[str]:
    """Return variable names referenced in text, in order of first use."""
    if not text:
        return []
    seen: dict[str, None] = {}
    for name in _VAR_NAME_RE.findall(text):
        seen.setdefault(name, None)
    return list(seen)


def extractable_variables(templates: Mapping[str, CallTemplate]) -> list[str]:
    """Sorted names produced by the extract rules of any call."""
    return sorted({to for t in templates.values() for to in t.extract_targets()})


def template_variables(templates: Mapping[str, CallTemplate]) -> list[str]:
    """Variables a variable set should define to run the given calls.

    Names filled in by extract rules are excluded: those come from
    responses, not from the variable set.
    """
    extracted = set(extractable_variables(templates))
    names: dict[str, None] = {}
    for t in templates.values():
        texts: list[str | None] = [t.url, t.body]
        texts.extend((t.headers or {}).values())
        texts.extend((t.form or {}).values())
        for text in texts:
            for name in find_placeholders(text):
                if name not in extracted:
                    names.setdefault(name, None)
    return list(names)


# ── Paths ────────────────────────────────────────────────────────────────


def workspace_dir(workspace: str) -> Path:
    if not workspace:
        raise ConfigurationError("No workspace specified")
    return GLOBAL_DIR / workspace


def bodies_dir(workspace: str) -> Path:
    return workspace_dir(workspace) / BODIES_DIR


def workspace_state_path(workspace: str) -> Path:
    return workspace_dir(workspace) / f"{workspace}.yaml"


def calls_path(workspace: str) -> Path:
    return workspace_dir(workspace) / CALLS_FILE


def variable_set_path(workspace: str, name: str) -> Path:
    return workspace_dir(workspace) / f"{name}{VARS_EXT}"


def workspace_exists(workspace: str) -> bool:
    return bool(workspace) and workspace_state_path(workspace).is_file()


def _require_workspace(workspace: str) -> Path:
    wdir = workspace_dir(workspace)
    if not wdir.is_dir():
        raise ConfigurationError(f"Workspace {workspace} does not exist")
    return wdir


# ── YAML documents ───────────────────────────────────────────────────────


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e


def _write_yaml(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False, allow_unicode=True)


def _mapping_or_empty(data: Any, path: Path) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must be a YAML mapping")
    return data


# ── Global config ────────────────────────────────────────────────────────


def load_config() -> GlobalConfig:
    """Load config.yaml, creating it with defaults on first use."""
    if not GLOBAL_CONFIG.exists():
        config = GlobalConfig()
        save_config(config)
        return config
    data = _mapping_or_empty(_read_yaml(GLOBAL_CONFIG), GLOBAL_CONFIG)
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid config {GLOBAL_CONFIG}: {e}") from e


def save_config(config: GlobalConfig) -> None:
    _write_yaml(GLOBAL_CONFIG, config.model_dump(mode="json"))


# ── Workspace state ──────────────────────────────────────────────────────


def load_workspace_state(workspace: str) -> WorkspaceState:
    _require_workspace(workspace)
    path = workspace_state_path(workspace)
    if not path.exists():
        raise ConfigurationError(f"{workspace} has no state file")
    data = _mapping_or_empty(_read_yaml(path), path)
    try:
        return WorkspaceState.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid workspace state {path}: {e}") from e


def save_workspace_state(workspace: str, state: WorkspaceState) -> None:
    _write_yaml(workspace_state_path(workspace), state.model_dump(mode="json"))


# ── Call templates ───────────────────────────────────────────────────────


def load_call_templates(workspace: str) -> dict[str, CallTemplate]:
    """Load calls.yaml as an ordered mapping of call name -> CallTemplate."""
    _require_workspace(workspace)
    path = calls_path(workspace)
    if not path.exists():
        return {}
    data = _mapping_or_empty(_read_yaml(path), path)
    templates: dict[str, CallTemplate] = {}
    for name, raw in data.items():
        try:
            template = CallTemplate.model_validate(raw or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid call '{name}' in {path}: {e}") from e
        template.name = str(name)
        templates[str(name)] = template
    return templates


def save_call_templates(workspace: str, templates: Mapping[str, CallTemplate]) -> None:
    _write_yaml(
        calls_path(workspace),
        {name: t.to_document() for name, t in templates.items()},
    )


def load_call_template(workspace: str, name: str) -> CallTemplate:
    templates = load_call_templates(workspace)
    if name not in templates:
        raise ConfigurationError(f"No call named {name} in workspace {workspace}")
    return templates[name]


# ── Variable sets ────────────────────────────────────────────────────────


def load_variable_set(workspace: str, name: str) -> dict[str, str]:
    path = variable_set_path(workspace, name)
    if not name or not path.is_file():
        raise ConfigurationError(f"Vars {name} doesn't exist in workspace {workspace}")
    values = dotenv_values(path, interpolate=False, encoding="utf-8")
    return {k: v or "" for k, v in values.items()}


def save_variable_set(workspace: str, name: str, variables: Mapping[str, str]) -> None:
    """Rewrite a variable set file from scratch, preserving key order."""
    path = variable_set_path(workspace, name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("", encoding="utf-8")
    for key, value in variables.items():
        set_key(path, key, value, quote_mode="auto", encoding="utf-8")


def list_variable_sets(workspace: str) -> list[str]:
    wdir = workspace_dir(workspace)
    if not wdir.is_dir():
        return []
    return sorted(
        f.stem
        for f in wdir.iterdir()
        if f.is_file() and f.suffix == VARS_EXT
    )


def delete_variable_set(workspace: str, name: str) -> None:
    path = variable_set_path(workspace, name)
    if not path.is_file():
        raise ConfigurationError(f"Vars {name} doesn't exist in workspace {workspace}")
    path.unlink()


# ── Workspaces ───────────────────────────────────────────────────────────


def list_workspaces() -> list[str]:
    if not GLOBAL_DIR.is_dir():
        return []
    return sorted(d.name for d in GLOBAL_DIR.iterdir() if d.is_dir() and workspace_exists(d.name))


def create_workspace(workspace: str) -> None:
    """Create the directory layout, an empty calls file and a blank state."""
    bodies_dir(workspace).mkdir(parents=True, exist_ok=True)
    if not calls_path(workspace).exists():
        save_call_templates(workspace, {})
    if not workspace_state_path(workspace).exists():
        save_workspace_state(workspace, WorkspaceState())


def delete_workspace(workspace: str) -> None:
    shutil.rmtree(_require_workspace(workspace))


# ── Argument helpers ─────────────────────────────────────────────────────


def split_workspace_arg(arg: str | None, current_workspace: str) -> tuple[str, str]:
    """Split ``ws.vars``, ``.vars`` or ``ws`` into (workspace, vars).

    A leading dot means the current workspace. The last dot separates the
    variable set name.
    """
    if arg is None:
        return current_workspace, ""
    if arg.startswith("."):
        return current_workspace, arg[1:]
    if "." in arg:
        workspace, _, vars_name = arg.rpartition(".")
        return workspace, vars_name
    return arg, ""

