"""Tests for response parsing stage."""

import pytest

from medscan.errors import ErrorKind, ExtractionError
from medscan.pipeline.stage_parse import ResponseParser, parse_response, strip_code_fence

PAYLOAD = '{"medications": [{"drug_name": "Metformin", "confidence": 0.9}]}'
EXPECTED = {"medications": [{"drug_name": "Metformin", "confidence": 0.9}]}


class TestStripCodeFence:
    """Tests for markdown fence removal."""

    def test_plain_text_trimmed(self):
        assert strip_code_fence("  \n" + PAYLOAD + "\n\n ") == PAYLOAD

    @pytest.mark.parametrize("tag", ["json", "javascript", "JSON", ""])
    def test_fence_with_and_without_tag(self, tag):
        text = f"```{tag}\n{PAYLOAD}\n```"
        assert strip_code_fence(text) == PAYLOAD

    def test_blank_lines_inside_fence(self):
        text = f"```json\n\n\n{PAYLOAD}\n\n```"
        assert strip_code_fence(text) == PAYLOAD

    def test_prose_around_fence_ignored(self):
        text = f"Here is the data:\n```json\n{PAYLOAD}\n```\nLet me know!"
        assert strip_code_fence(text) == PAYLOAD

    def test_unterminated_fence(self):
        assert strip_code_fence(f"```json\n{PAYLOAD}") == PAYLOAD

    def test_json_on_fence_line_kept(self):
        assert strip_code_fence(f"```{PAYLOAD}```") == PAYLOAD


class TestParseResponse:
    """Tests for JSON decoding."""

    @pytest.mark.parametrize(
        "text",
        [
            PAYLOAD,
            f"```json\n{PAYLOAD}\n```",
            f"```\n{PAYLOAD}\n```",
            f"\n\n   ```json\n{PAYLOAD}\n```   \n",
        ],
    )
    def test_wrappings_parse_to_same_structure(self, text):
        assert parse_response(text) == EXPECTED

    def test_invalid_json(self):
        """Plain prose is an extraction error."""
        with pytest.raises(ExtractionError) as exc_info:
            parse_response("not valid json at all")

        assert exc_info.value.kind == ErrorKind.EXTRACTION
        assert exc_info.value.message.startswith("invalid JSON:")

    def test_empty_text(self):
        with pytest.raises(ExtractionError):
            parse_response("   ")

    def test_non_string_input(self):
        with pytest.raises(ExtractionError):
            parse_response(None)

    def test_nan_rejected(self):
        """Strict JSON: NaN is not a number the model may return."""
        with pytest.raises(ExtractionError):
            parse_response('{"confidence": NaN}')

    def test_arrays_are_returned_as_is(self):
        """Shape checks belong to the validator."""
        assert parse_response("[1, 2]") == [1, 2]

    def test_parser_object(self):
        assert ResponseParser().parse(PAYLOAD) == EXPECTED
