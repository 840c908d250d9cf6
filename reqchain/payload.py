"""reqchain payload - turn a call template into a request body.

Exactly one body source is used per call, picked by fixed precedence:

  1. multipart_files   (content_type must be multipart/*)
  2. form              (content_type must be application/x-www-form-urlencoded)
  3. body file named on the command line
  4. inline body

GET never carries a body. POST/PUT/PATCH without one is a PayloadError.
"""

from __future__ import annotations

import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlencode

from urllib3.fields import RequestField
from urllib3.filepost import choose_boundary, encode_multipart_formdata

from reqchain.core import substitute_vars
from reqchain.errors import PayloadError
from reqchain.models import FORM_CONTENT_TYPE, CallTemplate, HttpMethod, MultipartFilePart

DEFAULT_PART_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class RawBody:
    """Inline body from the call template."""

    content: bytes
    content_type: str

    def encode(self) -> tuple[bytes, str]:
        return self.content, self.content_type


@dataclass(frozen=True)
class ExternalFileBody:
    """Body read from a file under the workspace's bodies/ directory."""

    path: Path
    content: bytes
    content_type: str

    def encode(self) -> tuple[bytes, str]:
        return self.content, self.content_type


@dataclass(frozen=True)
class MultipartPart:
    name: str
    filename: str
    content: bytes
    content_type: str


@dataclass(frozen=True)
class MultipartBody:
    """Form-data parts sent under the template's multipart/* type."""

    parts: tuple[MultipartPart, ...]
    media_type: str
    boundary: str = field(default_factory=choose_boundary)

    @property
    def content_type(self) -> str:
        return f"{self.media_type}; boundary={self.boundary}"

    def encode(self) -> tuple[bytes, str]:
        fields = []
        for part in self.parts:
            rf = RequestField(name=part.name, data=part.content, filename=part.filename)
            rf.make_multipart(content_type=part.content_type)
            fields.append(rf)
        body, _ = encode_multipart_formdata(fields, boundary=self.boundary)
        return body, self.content_type


@dataclass(frozen=True)
class FormBody:
    """URL-encoded form fields, values already substituted."""

    fields: tuple[tuple[str, str], ...]
    content_type: str = FORM_CONTENT_TYPE

    def encode(self) -> tuple[bytes, str]:
        return urlencode(self.fields).encode("ascii"), self.content_type


Payload = RawBody | ExternalFileBody | MultipartBody | FormBody


def build_payload(
    template: CallTemplate,
    scope: Mapping[str, str],
    bodies_dir: Path,
    body_filename: str | None = None,
) -> Payload | None:
    """Build the request body for a call, or None for GET.

    Raises PayloadError when the template's body configuration does not
    match its content type, a body file cannot be read, or a POST/PUT/PATCH
    call has no body at all.
    """
    if template.method == HttpMethod.GET:
        return None

    payload: Payload | None
    if template.multipart_files:
        payload = _build_multipart(template, scope, bodies_dir)
    elif template.form:
        payload = _build_form(template, scope)
    elif body_filename is not None:
        payload = _build_external_file(template, scope, bodies_dir / body_filename)
    elif template.body is not None:
        text = template.body
        if template.body_substitute_vars:
            text = substitute_vars(text, scope)
        payload = RawBody(content=text.encode("utf-8"), content_type=template.content_type)
    else:
        payload = None

    if payload is None:
        raise PayloadError(f"{template.method.value} with no body specified")
    return payload


def _build_multipart(
    template: CallTemplate,
    scope: Mapping[str, str],
    bodies_dir: Path,
) -> MultipartBody:
    if not template.content_type.startswith("multipart/"):
        raise PayloadError(
            "If multipart_files is set, content_type must be multipart/*, "
            f"got '{template.content_type}'",
        )
    parts = tuple(_build_part(part, scope, bodies_dir) for part in template.multipart_files or [])
    return MultipartBody(parts=parts, media_type=template.content_type)


def _build_part(
    part: MultipartFilePart,
    scope: Mapping[str, str],
    bodies_dir: Path,
) -> MultipartPart:
    path = bodies_dir / part.path
    content = _read_body_file(path, scope if part.substitute_vars else None)
    content_type = part.content_type or mimetypes.guess_type(path.name)[0] or DEFAULT_PART_TYPE
    return MultipartPart(
        name=part.name,
        filename=part.filename or path.name,
        content=content,
        content_type=content_type,
    )


def _build_form(template: CallTemplate, scope: Mapping[str, str]) -> FormBody:
    if template.content_type != FORM_CONTENT_TYPE:
        raise PayloadError(
            f"If form is set, content_type must be {FORM_CONTENT_TYPE}, "
            f"got '{template.content_type}'",
        )
    fields = tuple((k, substitute_vars(v, scope)) for k, v in (template.form or {}).items())
    return FormBody(fields=fields)


def _build_external_file(
    template: CallTemplate,
    scope: Mapping[str, str],
    path: Path,
) -> ExternalFileBody:
    content = _read_body_file(path, scope if template.body_substitute_vars else None)
    return ExternalFileBody(path=path, content=content, content_type=template.content_type)


def _read_body_file(path: Path, scope: Mapping[str, str] | None) -> bytes:
    """Read a body file as bytes, or as UTF-8 text with substitution when scope is given."""
    try:
        if scope is None:
            return path.read_bytes()
        return substitute_vars(path.read_text(encoding="utf-8"), scope).encode("utf-8")
    except FileNotFoundError as e:
        raise PayloadError(f"Body file not found: {path}") from e
    except UnicodeDecodeError as e:
        raise PayloadError(f"Body file {path} is not UTF-8 text, can't substitute vars") from e
    except OSError as e:
        raise PayloadError(f"Can't read body file {path}: {e}") from e
