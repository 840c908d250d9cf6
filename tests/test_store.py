"""Tests for the on-disk workspace store."""

import pytest
import yaml

from reqchain import core
from reqchain.errors import ConfigurationError
from reqchain.models import CallTemplate, ExtractSource, HttpMethod, OutputDest, WorkspaceState
from tests.conftest import make_workspace


class TestGlobalConfig:
    def test_created_with_defaults(self, global_reqchain_dir):
        config = core.load_config()
        assert config.current_workspace == ""
        assert config.output_dest == OutputDest.CONSOLE
        assert (global_reqchain_dir / "config.yaml").exists()

    def test_round_trip(self, global_reqchain_dir):
        config = core.load_config()
        config.current_workspace = "shop"
        config.output_dest = OutputDest.FILE
        core.save_config(config)
        loaded = core.load_config()
        assert loaded.current_workspace == "shop"
        assert loaded.output_dest == OutputDest.FILE

    def test_camel_case_keys_accepted(self, global_reqchain_dir):
        (global_reqchain_dir / "config.yaml").write_text(
            "currentWorkspace: shop\nshowCallTimes: true\noutputDest: FILE\n",
        )
        config = core.load_config()
        assert config.current_workspace == "shop"
        assert config.show_call_times is True
        assert config.output_dest == OutputDest.FILE

    def test_invalid_yaml(self, global_reqchain_dir):
        (global_reqchain_dir / "config.yaml").write_text("a: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            core.load_config()


class TestVariableSets:
    def test_round_trip_preserves_order_and_awkward_values(self, global_reqchain_dir):
        core.create_workspace("shop")
        values = {
            "host": "localhost:8080",
            "empty": "",
            "quote": "it's",
            "spaced": "a b #c",
            "plain": "abc123",
        }
        core.save_variable_set("shop", "dev", values)
        loaded = core.load_variable_set("shop", "dev")
        assert loaded == values
        assert list(loaded) == list(values)

    def test_plain_key_value_file(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir, variables={"host": "example.com", "id": "42"})
        assert core.load_variable_set("shop", "dev") == {"host": "example.com", "id": "42"}

    def test_braces_not_interpolated(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        (global_reqchain_dir / "shop" / "dev.env").write_text("url=${HOME}/{id}\n")
        assert core.load_variable_set("shop", "dev") == {"url": "${HOME}/{id}"}

    def test_missing_variable_set(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        with pytest.raises(ConfigurationError, match="Vars prod doesn't exist"):
            core.load_variable_set("shop", "prod")

    def test_list_variable_sets(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        core.save_variable_set("shop", "prod", {})
        assert core.list_variable_sets("shop") == ["dev", "prod"]

    def test_variable_set_named_like_workspace_is_listed(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        core.save_variable_set("shop", "shop", {})
        assert core.list_variable_sets("shop") == ["dev", "shop"]

    def test_delete(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        core.delete_variable_set("shop", "dev")
        assert core.list_variable_sets("shop") == []
        with pytest.raises(ConfigurationError):
            core.delete_variable_set("shop", "dev")


class TestWorkspaceState:
    def test_round_trip(self, global_reqchain_dir):
        core.create_workspace("shop")
        state = WorkspaceState(current_vars="dev", extracted_vars={"token": "abc"})
        core.save_workspace_state("shop", state)
        loaded = core.load_workspace_state("shop")
        assert loaded.current_vars == "dev"
        assert loaded.extracted_vars == {"token": "abc"}

    def test_missing_workspace(self, global_reqchain_dir):
        with pytest.raises(ConfigurationError, match="Workspace nope does not exist"):
            core.load_workspace_state("nope")

    def test_no_workspace_name(self, global_reqchain_dir):
        with pytest.raises(ConfigurationError, match="No workspace specified"):
            core.load_workspace_state("")

    def test_legacy_keys(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        (global_reqchain_dir / "shop" / "shop.yaml").write_text(
            yaml.safe_dump({"currentVars": "dev", "extractedVars": {"n": 5}}),
        )
        state = core.load_workspace_state("shop")
        assert state.current_vars == "dev"
        assert state.extracted_vars == {"n": "5"}

    def test_malformed_document(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir)
        (global_reqchain_dir / "shop" / "shop.yaml").write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="must be a YAML mapping"):
            core.load_workspace_state("shop")


class TestCallTemplates:
    def test_load_with_defaults_and_order(self, global_reqchain_dir):
        make_workspace(
            global_reqchain_dir,
            calls={
                "login": {
                    "url": "https://{host}/login",
                    "method": "post",
                    "body": "{}",
                    "extracts": [
                        {"from": "header", "to": "session", "value": "X-Session"},
                        {"to": "token", "value": "$.token"},
                    ],
                },
                "health": {"url": "https://{host}/health"},
            },
        )
        templates = core.load_call_templates("shop")
        assert list(templates) == ["login", "health"]
        login = templates["login"]
        assert login.name == "login"
        assert login.method == HttpMethod.POST
        assert login.content_type == "application/json"
        assert login.body_substitute_vars is True
        assert [r.source for r in login.extracts] == [ExtractSource.HEADER, ExtractSource.JSON_BODY]
        assert templates["health"].method == HttpMethod.GET

    def test_camel_case_template(self, global_reqchain_dir):
        make_workspace(
            global_reqchain_dir,
            calls={
                "upload": {
                    "url": "https://x/upload",
                    "method": "POST",
                    "contentType": "multipart/form-data",
                    "bodySubstituteVars": False,
                    "multipartFiles": [
                        {"path": "a.txt", "name": "doc", "substituteVars": True, "contentType": "text/plain"},
                    ],
                },
            },
        )
        upload = core.load_call_template("shop", "upload")
        assert upload.content_type == "multipart/form-data"
        assert upload.body_substitute_vars is False
        assert upload.multipart_files[0].substitute_vars is True
        assert upload.multipart_files[0].content_type == "text/plain"

    def test_numeric_header_values_become_strings(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir, calls={"c": {"url": "u", "headers": {"X-Retry": 3}}})
        assert core.load_call_template("shop", "c").headers == {"X-Retry": "3"}

    def test_extract_rule_without_target(self, global_reqchain_dir):
        make_workspace(
            global_reqchain_dir,
            calls={"c": {"url": "u", "extracts": [{"from": "HEADER", "value": "X-S"}]}},
        )
        with pytest.raises(ConfigurationError, match="Invalid call 'c'"):
            core.load_call_templates("shop")

    def test_unsupported_method(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir, calls={"c": {"url": "u", "method": "DELETE"}})
        with pytest.raises(ConfigurationError, match="Invalid call 'c'"):
            core.load_call_templates("shop")

    def test_missing_call(self, global_reqchain_dir):
        make_workspace(global_reqchain_dir, calls={})
        with pytest.raises(ConfigurationError, match="No call named login in workspace shop"):
            core.load_call_template("shop", "login")

    def test_save_round_trip(self, global_reqchain_dir):
        core.create_workspace("shop")
        tpl = CallTemplate.model_validate(
            {
                "url": "https://{host}/login",
                "method": "POST",
                "body": "{}",
                "extracts": [{"from": "HEADER", "to": "s", "value": "X-S"}],
            },
        )
        core.save_call_templates("shop", {"login": tpl})
        raw = yaml.safe_load((global_reqchain_dir / "shop" / "calls.yaml").read_text())
        assert raw["login"]["extracts"] == [{"from": "HEADER", "to": "s", "value": "X-S"}]
        assert "name" not in raw["login"]
        loaded = core.load_call_template("shop", "login")
        assert loaded.extracts[0].source == ExtractSource.HEADER


class TestWorkspaces:
    def test_create_and_list(self, global_reqchain_dir):
        core.create_workspace("shop")
        core.create_workspace("blog")
        (global_reqchain_dir / "not-a-workspace").mkdir()
        assert core.list_workspaces() == ["blog", "shop"]
        assert (global_reqchain_dir / "shop" / "bodies").is_dir()
        assert core.load_call_templates("shop") == {}

    def test_delete(self, global_reqchain_dir):
        core.create_workspace("shop")
        core.delete_workspace("shop")
        assert not (global_reqchain_dir / "shop").exists()


class TestSplitWorkspaceArg:
    @pytest.mark.parametrize(
        ("arg", "expected"),
        [
            ("shop", ("shop", "")),
            ("shop.dev", ("shop", "dev")),
            (".dev", ("current", "dev")),
            ("a.b.c", ("a.b", "c")),
            (None, ("current", "")),
        ],
    )
    def test_split(self, arg, expected):
        assert core.split_workspace_arg(arg, "current") == expected
