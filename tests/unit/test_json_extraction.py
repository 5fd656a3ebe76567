"""Unit tests for recovering JSON from model output."""

import pytest

from skilltree.engines.progression.json_extraction import (
    MalformedJSONError,
    candidate_payload,
    extract_json,
    strip_trailing_commas,
)


class TestExtractJson:
    def test_plain_array(self):
        assert extract_json('[{"a": 1}]') == [{"a": 1}]

    def test_fenced_block_with_language_and_commentary(self):
        text = 'Sure! Here is the lesson:\n```json\n[{"type": "text", "content": "Hi"}]\n```\nLet me know [if] you need more.'
        assert extract_json(text) == [{"type": "text", "content": "Hi"}]

    def test_fenced_block_without_language(self):
        assert extract_json('```\n{"verdict": "correct"}\n```') == {"verdict": "correct"}

    def test_fence_preferred_over_earlier_brackets(self):
        text = 'Options [a, b] below.\n```json\n{"ok": true}\n```'
        assert extract_json(text) == {"ok": True}

    def test_slices_between_outermost_brackets(self):
        text = 'Here you go: {"verdict": "partial", "skill_score": 55} Hope that helps.'
        assert extract_json(text) == {"verdict": "partial", "skill_score": 55}

    def test_trailing_commas_removed(self):
        assert extract_json('[{"a": 1, "b": [1, 2,],},]') == [{"a": 1, "b": [1, 2]}]

    def test_commas_inside_strings_survive_valid_json(self):
        text = '[{"type": "text", "content": "Lists look like [a, b, ] in prose."}]'
        assert extract_json(text)[0]["content"] == "Lists look like [a, b, ] in prose."

    def test_control_characters_stripped(self):
        assert extract_json('[{"content": "a\x07b\x00c"}]') == [{"content": "abc"}]

    def test_raw_newline_inside_string_tolerated(self):
        assert extract_json('[{"content": "line one\nline two"}]') == [{"content": "line one\nline two"}]

    def test_trailing_bracketed_commentary_falls_back_to_first_value(self):
        text = 'Result: [{"a": 1}] (see [note])'
        assert extract_json(text) == [{"a": 1}]


class TestExtractJsonFailures:
    def test_no_json_raises_with_raw_text(self):
        with pytest.raises(MalformedJSONError) as exc_info:
            extract_json("I cannot help with that.")
        assert exc_info.value.raw_text == "I cannot help with that."

    def test_truncated_payload_raises(self):
        with pytest.raises(MalformedJSONError):
            extract_json('[{"type": "text", "content": "unterminated')

    def test_empty_text_raises(self):
        with pytest.raises(MalformedJSONError):
            extract_json("   ")

    def test_non_string_raises(self):
        with pytest.raises(MalformedJSONError):
            extract_json(None)

    def test_is_a_value_error(self):
        assert issubclass(MalformedJSONError, ValueError)


class TestCandidatePayload:
    def test_returns_fence_body_without_repairing(self):
        assert candidate_payload("```json\n[1, 2,]\n```") == "[1, 2,]"

    def test_strip_trailing_commas(self):
        assert strip_trailing_commas("[1, 2, ]") == "[1, 2]"

    def test_text_without_brackets_is_returned_as_is(self):
        assert candidate_payload("nothing here") == "nothing here"
