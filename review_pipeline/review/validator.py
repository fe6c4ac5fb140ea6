# review_pipeline/review/validator.py
"""
Two-phase validation of free-form model output.

Phase 1 is best-effort extraction of the first balanced JSON object from the
text (the model may wrap it in prose or code fences). Phase 2 is strict
schema validation, which is the actual correctness guarantee. parse() never
raises: every failure becomes a ReviewResult with overall_status=ERROR.
"""

import json
import logging
from typing import Any

from pydantic import ValidationError

from .schemas import CATEGORIES, OVERALL_STATUSES, SEVERITIES, ReviewResult

logger = logging.getLogger(__name__)

NO_JSON_MESSAGE = "No JSON found in response"
REQUIRED_FIELDS = ("summary", "issues", "recommendations")


def find_json_object(text: str) -> str | None:
    """
    Return the first balanced {...} span in text, or None.

    Brace matching skips braces inside JSON strings (including escaped
    quotes). If a '{' never balances, the scan resumes at the next '{'.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escape = False
        for index in range(start, len(text)):
            ch = text[index]
            if escape:
                escape = False
                continue
            if ch == "\\" and in_string:
                escape = True
                continue
            if ch == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        start = text.find("{", start + 1)
    return None


def find_violation(data: dict[str, Any]) -> str | None:
    """First schema violation in a parsed response, or None if it is valid."""
    for field in REQUIRED_FIELDS:
        if field not in data:
            return f"Invalid response structure: missing required field '{field}'"

    summary = data["summary"]
    if not isinstance(summary, dict):
        return "Invalid response structure: summary must be an object"

    status = summary.get("overall_status")
    if status not in OVERALL_STATUSES:
        return f"Invalid overall_status in response: {status!r}"

    issues = data["issues"]
    if not isinstance(issues, list):
        return "Issues must be an array"

    for index, issue in enumerate(issues):
        if not isinstance(issue, dict):
            return f"Issue {index} must be an object"
        if issue.get("severity") not in SEVERITIES:
            return f"Invalid severity in issue {index}: {issue.get('severity')!r}"
        if issue.get("category") not in CATEGORIES:
            return f"Invalid category in issue {index}: {issue.get('category')!r}"

    return None


def _first_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "result"
    return f"Invalid review result at {location}: {first['msg']}"


class ResponseValidator:
    """Turns raw completion text into a ReviewResult without ever raising."""

    def parse(self, raw: object) -> ReviewResult:
        """
        Parse and validate model output.

        Args:
            raw: Completion text (bytes are decoded leniently; other types
                are treated as containing no JSON)

        Returns:
            The validated ReviewResult, or an ERROR result whose parse_error
            names the first problem found
        """
        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw).decode("utf-8", errors="replace")
        if not isinstance(raw, str):
            return self._fallback(NO_JSON_MESSAGE)

        span = find_json_object(raw)
        if span is None:
            return self._fallback(NO_JSON_MESSAGE)

        try:
            data = json.loads(span)
        except ValueError as e:  # JSONDecodeError, or ints past the digit limit
            return self._fallback(str(e))
        except RecursionError:
            return self._fallback("JSON nesting too deep")

        violation = find_violation(data)
        if violation is not None:
            return self._fallback(violation)

        if data["summary"]["overall_status"] == "ERROR" and not data.get("parse_error"):
            data = {**data, "parse_error": "Model reported overall_status ERROR"}

        try:
            return ReviewResult.model_validate(data)
        except ValidationError as e:
            return self._fallback(_first_validation_error(e))

    @staticmethod
    def _fallback(message: str) -> ReviewResult:
        logger.warning(f"Unusable review response: {message}")
        return ReviewResult.error(message)
