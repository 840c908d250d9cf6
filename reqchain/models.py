"""reqchain data models.

All persisted documents are validated with Pydantic v2. Field names are
snake_case on disk; the camelCase spellings (``contentType``,
``bodySubstituteVars``, ``extractedVars`` ...) are accepted when loading so
hand-written files in either style work.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _alias(snake: str, camel: str) -> AliasChoices:
    return AliasChoices(snake, camel)


def _stringify_values(value: Any) -> Any:
    """YAML happily produces ints/bools for header and form values."""
    if value is None:
        return None
    if isinstance(value, dict):
        return {str(k): "" if v is None else _scalar_str(v) for k, v in value.items()}
    return value


def _scalar_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"


class ExtractSource(str, Enum):
    HEADER = "HEADER"
    JSON_BODY = "JSON_BODY"


class OutputDest(str, Enum):
    CONSOLE = "console"
    FILE = "file"
    NONE = "none"


FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class ExtractRule(BaseModel):
    """Copy one value out of a response into the extracted variables."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    source: ExtractSource = Field(default=ExtractSource.JSON_BODY, alias="from")
    to: str = Field(min_length=1)
    value: str = ""

    @field_validator("source", mode="before")
    @classmethod
    def _upper_source(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class MultipartFilePart(BaseModel):
    """One file attached to a multipart request.

    ``path`` is relative to the workspace's ``bodies/`` directory.
    """

    model_config = ConfigDict(extra="ignore")

    path: str
    name: str
    filename: str | None = None
    substitute_vars: bool = Field(
        default=False,
        validation_alias=_alias("substitute_vars", "substituteVars"),
    )
    content_type: str | None = Field(
        default=None,
        validation_alias=_alias("content_type", "contentType"),
    )


class CallTemplate(BaseModel):
    """A stored, parameterized HTTP request.

    At most one body source is used per call; see ``reqchain.payload`` for
    the precedence between ``multipart_files``, ``form``, a body file given on
    the command line, and ``body``.
    """

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="", exclude=True)
    url: str = ""
    method: HttpMethod = HttpMethod.GET
    content_type: str = Field(
        default="application/json",
        validation_alias=_alias("content_type", "contentType"),
    )
    headers: dict[str, str] | None = None
    body: str | None = None
    body_substitute_vars: bool = Field(
        default=True,
        validation_alias=_alias("body_substitute_vars", "bodySubstituteVars"),
    )
    extracts: list[ExtractRule] | None = None
    multipart_files: list[MultipartFilePart] | None = Field(
        default=None,
        validation_alias=_alias("multipart_files", "multipartFiles"),
    )
    form: dict[str, str] | None = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("headers", "form", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return _stringify_values(v)

    def body_sources(self) -> list[str]:
        """Names of the body sources configured on this template, in precedence order."""
        sources = []
        if self.multipart_files:
            sources.append("multipart_files")
        if self.form:
            sources.append("form")
        if self.body is not None:
            sources.append("body")
        return sources

    def extract_targets(self) -> list[str]:
        return [rule.to for rule in self.extracts or []]

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkspaceState(BaseModel):
    """Selected variable set plus values captured from earlier responses."""

    model_config = ConfigDict(extra="ignore")

    current_vars: str = Field(
        default="",
        validation_alias=_alias("current_vars", "currentVars"),
    )
    extracted_vars: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=_alias("extracted_vars", "extractedVars"),
    )

    @field_validator("current_vars", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("extracted_vars", mode="before")
    @classmethod
    def _stringify(cls, v: Any) -> Any:
        return _stringify_values(v) or {}


def _default_editor() -> str:
    return os.environ.get("EDITOR", "")


class GlobalConfig(BaseModel):
    """Contents of ``config.yaml`` in the reqchain home directory."""

    model_config = ConfigDict(extra="ignore")

    current_workspace: str = Field(
        default="",
        validation_alias=_alias("current_workspace", "currentWorkspace"),
    )
    editor: str = Field(default_factory=_default_editor)
    show_call_times: bool = Field(
        default=False,
        validation_alias=_alias("show_call_times", "showCallTimes"),
    )
    output_dest: OutputDest = Field(
        default=OutputDest.CONSOLE,
        validation_alias=_alias("output_dest", "outputDest"),
    )
    output_dir: str = Field(
        default="~/.reqchain/responses",
        validation_alias=_alias("output_dir", "outputDir"),
    )

    @field_validator("current_workspace", "editor", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("output_dest", mode="before")
    @classmethod
    def _lower_dest(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v
