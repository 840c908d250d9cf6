"""reqchain CLI - named REST calls with variables and response chaining."""

import sys

import click

from reqchain import core
from reqchain.errors import ConfigurationError, ReqchainError
from reqchain.models import GlobalConfig, OutputDest

TOOL_HELP = """\
reqchain — run named REST calls from the command line.

Calls live in workspaces. Each workspace has a calls file, one or more
variable sets, and a bodies/ directory for request body files.

\b
CALLS
─────
  reqchain login                 run the call named "login"
  reqchain call login            same thing
  reqchain call upload doc.json  send bodies/doc.json as the body
  reqchain s login               save the response body to a file
  reqchain e login               save the response body and open it in an editor

\b
WORKSPACES AND VARIABLE SETS
────────────────────────────
  reqchain add shop.dev          create workspace "shop" with variable set "dev"
  reqchain add .prod             add variable set "prod" to the current workspace
  reqchain use shop              switch workspace (keeps its selected variable set)
  reqchain use shop.prod         switch workspace and variable set
  reqchain use .dev              switch variable set in the current workspace
  reqchain delete shop.prod      delete a variable set
  reqchain delete shop           delete a whole workspace
  reqchain edit                  edit calls in the current workspace
  reqchain edit .dev             edit a variable set
  reqchain set host localhost    set a variable in the current variable set
  reqchain update                add variables used by calls to every variable set
  reqchain list                  list workspaces and variable sets
  reqchain calls                 list calls in the current workspace
  reqchain vars                  show variables and extracted values
  reqchain clear                 forget extracted values
  reqchain output file           send response bodies to console|file|none
  reqchain status                show current workspace and variable set
  reqchain config                edit the global config file

\b
CALLS FILE FORMAT (<workspace>/calls.yaml)
──────────────────────────────────────────
  \b
  login:
    url: https://{host}/api/login
    method: POST
    content_type: application/json
    headers:
      X-Client: reqchain
    body: '{"user": "{user}", "password": "{password}"}'
    extracts:
      - from: JSON_BODY           # JSON_BODY | HEADER
        to: token
        value: $.token
  me:
    url: https://{host}/api/me
    headers:
      Authorization: Bearer {token}

  {name} placeholders are replaced from the selected variable set. Values
  extracted from earlier responses take precedence. Unknown placeholders are
  left as they are.

\b
BODY SOURCES (first match wins)
───────────────────────────────
  multipart_files   list of {path, name, filename, content_type, substitute_vars};
                    content_type must be multipart/*
  form              mapping of fields; content_type must be
                    application/x-www-form-urlencoded
  body file         second argument to call/s/e, read from bodies/
  body              inline string (body_substitute_vars: false to send as-is)
"""


class CallByDefaultGroup(click.Group):
    """Command group where an unknown first word is the name of a call.

    Also turns reqchain errors into a one-line message and exit status 1.
    """

    def resolve_command(self, ctx, args):
        name = args[0]
        if (
            not name.startswith("-")
            and self.get_command(ctx, name) is None
            and self.get_command(ctx, name.lower()) is None
        ):
            return "call", self.get_command(ctx, "call"), args
        return super().resolve_command(ctx, args)

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except ReqchainError as e:
            click.echo(f"ERROR: {e}", err=True)
            sys.exit(1)


@click.group(
    cls=CallByDefaultGroup,
    help=TOOL_HELP,
    invoke_without_command=True,
    context_settings={
        "max_content_width": 88,
        "help_option_names": ["-h", "--help"],
        "token_normalize_func": str.lower,
    },
)
@click.pass_context
def main(ctx):
    """Run named REST calls with variables and response chaining."""
    ctx.obj = core.load_config()
    if ctx.invoked_subcommand is None:
        _cmd_status(ctx.obj)


# ── Commands ─────────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def status(config):
    """Show current workspace, variable set and output destination."""
    _cmd_status(config)


@main.command("config")
@click.pass_obj
def config_cmd(config):
    """Edit the global config file."""
    _open_editor(config, core.GLOBAL_CONFIG)


@main.command()
@click.argument("target")
@click.pass_obj
def use(config, target):
    """Switch to WORKSPACE, WORKSPACE.VARS or .VARS."""
    workspace, vars_name = core.split_workspace_arg(target, config.current_workspace)
    if not workspace:
        raise ConfigurationError("No current workspace")
    state = core.load_workspace_state(workspace)
    vars_name = vars_name or state.current_vars or _first_variable_set(workspace)
    if not core.variable_set_path(workspace, vars_name).is_file():
        raise ConfigurationError(f"Vars {vars_name} does not exist in workspace {workspace}")

    config.current_workspace = workspace
    core.save_config(config)

    if state.current_vars != vars_name:
        state.current_vars = vars_name
        state.extracted_vars.clear()
        core.save_workspace_state(workspace, state)
    click.echo(f"using {workspace}.{vars_name}")


@main.command()
@click.argument("target")
@click.pass_obj
def add(config, target):
    """Add a variable set (and its workspace if needed): WORKSPACE.VARS or .VARS."""
    if "." not in target:
        raise ConfigurationError("No vars specified, use WORKSPACE.VARS or .VARS")
    workspace, vars_name = core.split_workspace_arg(target, config.current_workspace)
    if not workspace:
        raise ConfigurationError("No current workspace")
    if "." in workspace:
        raise ConfigurationError("Workspace name can't contain a dot")
    if not vars_name:
        raise ConfigurationError("No vars specified")
    if vars_name == workspace:
        raise ConfigurationError("Vars can't be named the same as the workspace")

    if not core.workspace_exists(workspace):
        core.create_workspace(workspace)
        click.echo(f"created workspace {workspace}")
    if core.variable_set_path(workspace, vars_name).exists():
        raise ConfigurationError(f"Vars {vars_name} already exists in workspace {workspace}")

    templates = core.load_call_templates(workspace)
    core.save_variable_set(
        workspace,
        vars_name,
        {name: "" for name in core.template_variables(templates)},
    )
    click.echo(f"created vars {workspace}.{vars_name}")

    if not config.current_workspace:
        config.current_workspace = workspace
        core.save_config(config)
    state = core.load_workspace_state(workspace)
    if not state.current_vars:
        state.current_vars = vars_name
        core.save_workspace_state(workspace, state)


@main.command()
@click.argument("target")
@click.pass_obj
def delete(config, target):
    """Delete WORKSPACE, WORKSPACE.VARS or .VARS."""
    workspace, vars_name = core.split_workspace_arg(target, config.current_workspace)
    if not workspace:
        raise ConfigurationError("No current workspace")

    if not vars_name:
        core.delete_workspace(workspace)
        click.echo(f"deleted workspace {workspace}")
        if config.current_workspace == workspace:
            config.current_workspace = ""
            core.save_config(config)
        return

    state = core.load_workspace_state(workspace)
    core.delete_variable_set(workspace, vars_name)
    click.echo(f"deleted vars {workspace}.{vars_name}")
    if state.current_vars == vars_name:
        state.current_vars = ""
        core.save_workspace_state(workspace, state)


@main.command()
@click.argument("target", required=False)
@click.pass_obj
def edit(config, target):
    """Edit calls (no argument or WORKSPACE) or a variable set (WORKSPACE.VARS or .VARS)."""
    workspace, vars_name = core.split_workspace_arg(target, config.current_workspace)
    if not workspace:
        raise ConfigurationError("No current workspace")
    if vars_name:
        path = core.variable_set_path(workspace, vars_name)
        if not path.is_file():
            raise ConfigurationError(f"Vars {vars_name} doesn't exist in workspace {workspace}")
    else:
        if not core.workspace_exists(workspace):
            raise ConfigurationError(f"Workspace {workspace} does not exist")
        path = core.calls_path(workspace)
    _open_editor(config, path)


@main.command("set")
@click.argument("name")
@click.argument("value")
@click.pass_obj
def set_cmd(config, name, value):
    """Set a variable in the current variable set.

    Variables produced by extract rules are set in the extracted values instead.
    """
    workspace = _require_current_workspace(config)
    state = core.load_workspace_state(workspace)
    templates = core.load_call_templates(workspace)
    if name in core.extractable_variables(templates):
        state.extracted_vars[name] = value
        core.save_workspace_state(workspace, state)
        return
    if not state.current_vars:
        raise ConfigurationError(f"No current vars in workspace {workspace}")
    variables = core.load_variable_set(workspace, state.current_vars)
    variables[name] = value
    core.save_variable_set(workspace, state.current_vars, variables)


@main.command()
@click.pass_obj
def update(config):
    """Add variables used by calls to every variable set in the current workspace."""
    workspace = _require_current_workspace(config)
    used = core.template_variables(core.load_call_templates(workspace))
    names = core.list_variable_sets(workspace)
    if not names:
        raise ConfigurationError(f"No vars files in workspace {workspace}")
    for vars_name in names:
        variables = core.load_variable_set(workspace, vars_name)
        missing = [v for v in used if v not in variables]
        if missing:
            click.echo(f"adding vars to {workspace}.{vars_name}: {', '.join(missing)}")
            variables.update({v: "" for v in missing})
            core.save_variable_set(workspace, vars_name, variables)


@main.command("list")
@click.pass_obj
def list_cmd(config):
    """List workspaces and their variable sets."""
    workspaces = core.list_workspaces()
    if not workspaces:
        click.echo("No workspaces exist")
        return
    click.echo("workspaces:")
    for ws in workspaces:
        label = f"*{ws}" if ws == config.current_workspace else ws
        click.secho(label, fg="green")
        current_vars = core.load_workspace_state(ws).current_vars
        for vars_name in core.list_variable_sets(ws):
            click.echo(f"  *{vars_name}" if vars_name == current_vars else f"  {vars_name}")


@main.command()
@click.pass_obj
def calls(config):
    """List calls in the current workspace."""
    workspace = _require_current_workspace(config)
    click.secho(f"calls in {workspace}:", bold=True)
    for name, tpl in core.load_call_templates(workspace).items():
        line = f"{click.style(name, fg='yellow')} -> {tpl.method.value} {tpl.url}"
        targets = tpl.extract_targets()
        if targets:
            line += f" [extracts {click.style(', '.join(targets), fg='green')}]"
        sources = tpl.body_sources()
        if len(sources) > 1:
            line += f" (body from {sources[0]}, ignoring {', '.join(sources[1:])})"
        click.echo(line)


@main.command("vars")
@click.pass_obj
def vars_cmd(config):
    """Show variables, extracted values and not-yet-extracted variables."""
    workspace = _require_current_workspace(config)
    state = core.load_workspace_state(workspace)
    if not state.current_vars:
        raise ConfigurationError(f"No current vars in workspace {workspace}")
    label = f"{workspace}.{state.current_vars}"

    variables = core.load_variable_set(workspace, state.current_vars)
    click.secho(f"vars in {label}:", bold=True)
    for key in sorted(variables):
        click.echo(f"{click.style(key, fg='yellow')} -> {variables[key]}")

    click.secho(f"extracted vars in {label}:", bold=True)
    for key in sorted(state.extracted_vars):
        click.echo(f"{click.style(key, fg='yellow')} -> {state.extracted_vars[key]}")

    extractable = core.extractable_variables(core.load_call_templates(workspace))
    unextracted = [k for k in extractable if k not in state.extracted_vars]
    if unextracted:
        click.secho(f"unextracted vars in {label}:", bold=True)
        for key in unextracted:
            click.secho(key, fg="yellow")


@main.command()
@click.pass_obj
def clear(config):
    """Clear extracted values in the current workspace."""
    workspace = _require_current_workspace(config)
    state = core.load_workspace_state(workspace)
    state.extracted_vars.clear()
    core.save_workspace_state(workspace, state)
    click.echo(f"cleared extracted vars in workspace {workspace}")


@main.command()
@click.argument("call_name")
@click.argument("body_file", required=False)
@click.pass_obj
def call(config, call_name, body_file):
    """Run CALL_NAME, optionally sending BODY_FILE from the bodies/ directory."""
    _cmd_call(config, call_name, body_file, mode="call")


@main.command("s")
@click.argument("call_name")
@click.argument("body_file", required=False)
@click.pass_obj
def save_call(config, call_name, body_file):
    """Run CALL_NAME and save the response body to a file."""
    _cmd_call(config, call_name, body_file, mode="save")


@main.command("e")
@click.argument("call_name")
@click.argument("body_file", required=False)
@click.pass_obj
def edit_call(config, call_name, body_file):
    """Run CALL_NAME, save the response body and open it in the editor."""
    _cmd_call(config, call_name, body_file, mode="edit")


@main.command()
@click.argument(
    "destination",
    required=False,
    type=click.Choice([d.value for d in OutputDest], case_sensitive=False),
)
@click.pass_obj
def output(config, destination):
    """Show or set where response bodies go: console, file or none."""
    if destination is None:
        click.echo(f"response body output goes to {_describe_output(config)}")
        return
    config.output_dest = OutputDest(destination.lower())
    core.save_config(config)
    click.echo(f"response body output will now go to {_describe_output(config)}")


@main.command("help")
@click.pass_context
def help_cmd(ctx):
    """Show this message."""
    click.echo(ctx.parent.get_help())


# ── Subcommand implementations ──────────────────────────────────────────


def _cmd_status(config: GlobalConfig):
    workspace = config.current_workspace or "*no workspace selected*"
    vars_name = "*no vars selected*"
    if core.workspace_exists(config.current_workspace):
        vars_name = core.load_workspace_state(config.current_workspace).current_vars or vars_name
    click.echo(f"workspace: {workspace}")
    click.echo(f"vars file: {vars_name}")
    click.echo(f"output destination: {_describe_output(config)}")


def _cmd_call(config: GlobalConfig, call_name, body_file, mode):
    """Run a call and render it. mode is 'call', 'save' or 'edit'."""
    from reqchain.render import (
        body_text,
        format_duration,
        format_request,
        format_response_head,
        write_body_file,
    )
    from reqchain.runner import run_call

    workspace = _require_current_workspace(config)

    def on_request(prepared):
        click.echo(format_request(prepared.label, prepared.url, prepared.headers))
        click.echo()

    def on_response(prepared, result):
        click.echo(format_response_head(prepared.label, result))
        to_file = mode != "call" or config.output_dest == OutputDest.FILE
        if not result.content and not to_file:
            return
        if not to_file and config.output_dest == OutputDest.NONE:
            return
        click.echo()
        text = body_text(result)
        if not to_file:
            click.echo(text)
            return
        path = write_body_file(
            config.output_dir,
            workspace,
            call_name,
            text,
            result.content_type,
        )
        click.echo(f"wrote response body to: file://{path.resolve()}")
        if mode == "edit":
            _open_editor(config, path)

    outcome = run_call(
        workspace,
        call_name,
        body_file,
        on_request=on_request,
        on_response=on_response,
    )

    for to, _value in outcome.report.written:
        click.echo(f"extracted {click.style(to, fg='green')}")
    for rule, reason in outcome.report.skipped:
        click.echo(f"skipped extract {rule.to}: {reason}", err=True)
    if config.show_call_times:
        click.echo(
            f"{click.style('call took:', fg='cyan')} {format_duration(outcome.result.elapsed_ms)}",
        )


# ── Helpers ──────────────────────────────────────────────────────────────


def _require_current_workspace(config: GlobalConfig) -> str:
    if not config.current_workspace:
        raise ConfigurationError("No current workspace")
    return config.current_workspace


def _first_variable_set(workspace: str) -> str:
    names = core.list_variable_sets(workspace)
    if not names:
        raise ConfigurationError(f"No vars in workspace {workspace}")
    return names[0]


def _describe_output(config: GlobalConfig) -> str:
    if config.output_dest == OutputDest.FILE:
        return f"{config.output_dest.value} ({config.output_dir})"
    return config.output_dest.value


def _open_editor(config: GlobalConfig, path):
    click.edit(filename=str(path), editor=config.editor or None)
