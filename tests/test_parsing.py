"""Tests for JSON extraction and response validation."""
import pytest
from pathlib import Path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from naybourhood.errors import ResponseParseError, ResponseSchemaError
from naybourhood.insights import InsightType, parse_insights
from naybourhood.parsing import extract_json, parse_model_output, strip_code_fences, validate_response
from naybourhood.schemas import LeadScoreResult, SpamCheck


class TestExtractJson:

    def test_plain_object(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_with_trailing_comma(self):
        text = 'Here you go:\n```json\n{"score": 72, "tags": ["a", "b",],}\n```\nThanks'
        assert extract_json(text) == {"score": 72, "tags": ["a", "b"]}

    def test_commentary_around_object(self):
        assert extract_json('Result: {"ok": true} hope that helps') == {"ok": True}

    def test_array(self):
        assert extract_json('[{"leadId": "1"}]') == [{"leadId": "1"}]

    def test_fence_without_language(self):
        assert strip_code_fences("```\n{}\n```") == "{}"

    def test_no_json_raises(self):
        with pytest.raises(ResponseParseError) as exc:
            extract_json("I could not score this lead.")
        assert exc.value.raw_response == "I could not score this lead."

    def test_broken_json_raises_parse_error(self):
        with pytest.raises(ResponseParseError):
            extract_json('{"score": 72, "status": }')

    def test_empty_raises(self):
        with pytest.raises(ResponseParseError):
            extract_json("   ")

    def test_parse_error_payload_has_raw_response(self):
        error = ResponseParseError("Failed to parse AI response", raw_response="nope")
        assert error.to_payload() == {"error": "Failed to parse AI response", "raw_response": "nope"}
        assert error.status_code == 500


class TestValidateResponse:

    def test_valid_lead_score(self):
        result = parse_model_output(
            '{"status": "scored", "score": 74.6, "priority": 1, "priority_label": "P1"}',
            LeadScoreResult,
        )
        assert result.score == 75
        assert result.priority == 1

    def test_scored_without_priority_rejected(self):
        with pytest.raises(ResponseSchemaError):
            validate_response({"status": "scored", "score": 40}, LeadScoreResult)

    def test_schema_error_lists_fields(self):
        with pytest.raises(ResponseSchemaError) as exc:
            validate_response({"isSpam": "maybe", "confidence": 300}, SpamCheck)
        fields = {error["field"] for error in exc.value.details}
        assert "confidence" in fields
        assert "recommendation" in fields

    def test_flagged_payload_keeps_null_priority(self):
        result = validate_response(
            {"status": "flagged", "reason": "Gibberish name", "score": 0, "priority": None},
            LeadScoreResult,
        )
        assert result.to_payload()["priority"] is None


class TestParseInsights:

    def test_numbered_reply(self):
        insights = parse_insights(
            "1. Contact the three hot leads today\n"
            "2. Risk: Audience Network CPL is rising\n"
            "3. Excellent CTR on the Battersea campaign"
        )
        assert [i.type for i in insights] == [InsightType.ACTION, InsightType.WARNING, InsightType.SUCCESS]

    def test_at_most_three(self):
        insights = parse_insights("1. a\n2. b\n3. c\n4. d")
        assert len(insights) == 3

    def test_default_is_opportunity(self):
        assert parse_insights("1. Expand into Manchester")[0].type == InsightType.OPPORTUNITY

    def test_text_truncated(self):
        insights = parse_insights("1. " + "x" * 200)
        assert len(insights[0].text) == 80
