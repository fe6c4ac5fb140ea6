# tests/unit/test_validator.py
"""Unit tests for ResponseValidator and JSON extraction."""

import json
import sys

import pytest

from review_pipeline.review import ResponseValidator, ReviewResult
from review_pipeline.review.validator import NO_JSON_MESSAGE, find_json_object


def _response(**overrides) -> dict:
    data = {
        "summary": {
            "overall_status": "WARNING",
            "total_issues": 1,
            "high_severity": 0,
            "medium_severity": 1,
            "low_severity": 0,
        },
        "issues": [
            {
                "file": "src/app.py",
                "line": 12,
                "severity": "MEDIUM",
                "category": "LOGIC",
                "title": "Unchecked None",
                "description": "user may be None here",
                "recommendation": "Guard against None",
            }
        ],
        "recommendations": {
            "immediate_actions": ["Add a None check"],
            "long_term_improvements": [],
        },
    }
    data.update(overrides)
    return data


@pytest.fixture
def validator():
    return ResponseValidator()


class TestFindJsonObject:
    def test_braces_inside_strings(self):
        text = 'before {"a": "}{", "b": {"c": 1}} after'
        assert find_json_object(text) == '{"a": "}{", "b": {"c": 1}}'

    def test_escaped_quotes(self):
        text = '{"a": "say \\"}\\" now"}'
        assert find_json_object(text) == text

    def test_resumes_after_unbalanced_brace(self):
        assert find_json_object('x { y {"a": 1}') == '{"a": 1}'

    def test_none_without_object(self):
        assert find_json_object("no braces at all") is None
        assert find_json_object("{ never closed") is None


class TestParseValid:
    def test_plain_json(self, validator):
        result = validator.parse(json.dumps(_response()))

        assert result.overall_status == "WARNING"
        assert result.parse_error is None
        assert result.issues[0].line == 12
        assert result.severity_counts() == {"HIGH": 0, "MEDIUM": 1, "LOW": 0}

    def test_wrapped_in_prose_and_fences(self, validator):
        raw = "Here is my review:\n```json\n" + json.dumps(_response()) + "\n```\nThanks!"

        result = validator.parse(raw)

        assert result.overall_status == "WARNING"
        assert result.issues[0].title == "Unchecked None"

    def test_round_trip(self, validator):
        data = _response()
        assert validator.parse(json.dumps(data)).to_payload() == data

    def test_unknown_keys_preserved(self, validator):
        result = validator.parse(json.dumps(_response(reviewer="bot")))
        assert result.model_extra == {"reviewer": "bot"}

    def test_bytes_input(self, validator):
        result = validator.parse(json.dumps(_response()).encode("utf-8"))
        assert result.overall_status == "WARNING"

    def test_issue_without_line(self, validator):
        data = _response(
            issues=[{"file": "a.py", "severity": "LOW", "category": "STANDARDS", "title": "Naming"}]
        )
        result = validator.parse(json.dumps(data))

        assert result.issues[0].line is None

    def test_model_reported_error(self, validator):
        data = _response(summary={"overall_status": "ERROR"}, issues=[])

        result = validator.parse(json.dumps(data))

        assert result.overall_status == "ERROR"
        assert result.parse_error == "Model reported overall_status ERROR"


class TestParseFallback:
    """Every unusable input becomes an ERROR result."""

    @pytest.mark.parametrize("raw", [None, 42, "", "I found no issues.", ["list"]])
    def test_no_json(self, validator, raw):
        result = validator.parse(raw)

        assert result.overall_status == "ERROR"
        assert result.parse_error == NO_JSON_MESSAGE
        assert result.issues == []
        assert result.recommendations.immediate_actions == ["Review response parsing failed"]
        assert result.recommendations.long_term_improvements == ["Check AI response format"]

    def test_invalid_json_span(self, validator):
        result = validator.parse("{ summary: not json }")

        assert result.overall_status == "ERROR"
        assert result.parse_error
        assert result.parse_error != NO_JSON_MESSAGE

    def test_missing_field(self, validator):
        data = _response()
        del data["issues"]

        result = validator.parse(json.dumps(data))

        assert result.parse_error == "Invalid response structure: missing required field 'issues'"

    def test_invalid_status(self, validator):
        result = validator.parse(json.dumps(_response(summary={"overall_status": "MAYBE"})))
        assert result.parse_error == "Invalid overall_status in response: 'MAYBE'"

    def test_issues_not_array(self, validator):
        result = validator.parse(json.dumps(_response(issues={"0": "x"})))
        assert result.parse_error == "Issues must be an array"

    def test_invalid_severity(self, validator):
        issues = _response()["issues"] * 2
        issues[1] = {**issues[1], "severity": "CRITICAL"}

        result = validator.parse(json.dumps(_response(issues=issues)))

        assert result.parse_error == "Invalid severity in issue 1: 'CRITICAL'"

    def test_invalid_category(self, validator):
        issues = [{**_response()["issues"][0], "category": "STYLE"}]
        result = validator.parse(json.dumps(_response(issues=issues)))
        assert result.parse_error == "Invalid category in issue 0: 'STYLE'"

    def test_negative_line(self, validator):
        issues = [{**_response()["issues"][0], "line": -1}]

        result = validator.parse(json.dumps(_response(issues=issues)))

        assert result.overall_status == "ERROR"
        assert result.parse_error.startswith("Invalid review result at issues.0.line")

    def test_deep_nesting(self, validator):
        raw = '{"a": ' * 50_000 + "1" + "}" * 50_000

        result = validator.parse(raw)

        assert result.overall_status == "ERROR"
        assert result.parse_error == "JSON nesting too deep"


    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"), reason="no int digit limit"
    )
    def test_number_past_int_digit_limit(self, validator):
        raw = (
            '{"summary": {"overall_status": "PASS", "total_issues": '
            + "9" * 5000
            + '}, "issues": [], "recommendations": {}}'
        )

        result = validator.parse(raw)

        assert result.overall_status == "ERROR"
        assert "digits" in result.parse_error


class TestReviewResult:
    def test_error_requires_parse_error(self):
        with pytest.raises(ValueError):
            ReviewResult.model_validate(
                {"summary": {"overall_status": "ERROR"}, "issues": [], "recommendations": {}}
            )

    def test_parse_error_requires_error_status(self):
        with pytest.raises(ValueError):
            ReviewResult.model_validate(
                {
                    "summary": {"overall_status": "PASS"},
                    "issues": [],
                    "recommendations": {},
                    "parse_error": "x",
                }
            )

    def test_error_factory(self):
        result = ReviewResult.error("boom")

        assert result.overall_status == "ERROR"
        assert result.summary.total_issues == 0
        assert result.parse_error == "boom"
