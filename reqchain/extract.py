"""reqchain extract - copy response values into extracted variables.

Rules run in declared order. A rule that can't be applied is skipped; it
never fails the call and never stops the rules after it. When several rules
write the same variable, the last one to match wins.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, MutableMapping
from typing import Any

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JSONPathError

from reqchain.errors import ExtractionError
from reqchain.executor import CallResult
from reqchain.models import ExtractRule, ExtractSource


class ExtractionReport:
    """What a set of extract rules did to the extracted variables."""

    def __init__(self):
        self.written: list[tuple[str, str]] = []
        self.skipped: list[tuple[ExtractRule, str]] = []

    @property
    def changed(self) -> bool:
        return bool(self.written)


def apply_extracts(
    rules: Iterable[ExtractRule] | None,
    result: CallResult,
    extracted: MutableMapping[str, str],
) -> ExtractionReport:
    """Apply rules to result, writing matches into extracted.

    The body is parsed as JSON at most once, and only if a JSON_BODY rule
    needs it.
    """
    report = ExtractionReport()
    body_cache: dict[str, Any] = {}

    for rule in rules or []:
        try:
            value = _extract_one(rule, result, body_cache)
        except ExtractionError as e:
            report.skipped.append((rule, str(e)))
            continue
        extracted[rule.to] = value
        report.written.append((rule.to, value))

    return report


def _extract_one(rule: ExtractRule, result: CallResult, body_cache: dict[str, Any]) -> str:
    if rule.source == ExtractSource.HEADER:
        value = result.header(rule.value)
        if value is None:
            raise ExtractionError(f"no response header '{rule.value}'")
        return value

    if "body" not in body_cache:
        body_cache["body"] = _parse_json_body(result)
    body = body_cache["body"]
    if isinstance(body, ExtractionError):
        raise body
    return extract_json_value(body, rule.value)


def _parse_json_body(result: CallResult) -> Any:
    """Parsed JSON body, or the ExtractionError to report for every JSON rule."""
    if not result.content:
        return ExtractionError("response body is empty")
    try:
        return json.loads(result.content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return ExtractionError(f"response body is not JSON: {e}")


def extract_json_value(body: Any, selector: str) -> str:
    """Look up a single value in a JSON document with a JSONPath selector.

    Returns the first match. Strings are returned as-is, other JSON values
    are serialized (``42``, ``true``, ``{"a": 1}``).
    """
    try:
        expr = jsonpath_parse(selector)
    except (JSONPathError, ValueError) as e:
        raise ExtractionError(f"invalid JSON path '{selector}': {e}") from e

    try:
        matches = expr.find(body)
    except (JSONPathError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise ExtractionError(f"JSON path '{selector}' failed: {e}") from e

    if not matches:
        raise ExtractionError(f"JSON path '{selector}' matched nothing")
    return stringify(matches[0].value)


def stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value)
