"""Unit tests for lesson content parsing, validation and markdown normalization."""

import json

import pytest
from pydantic import ValidationError

from skilltree.engines.progression.content_ingestion import (
    LegacyText,
    StructuredSections,
    classify_content,
    normalize_markdown,
    parse_generated_sections,
    sections_to_documents,
)
from skilltree.engines.progression.errors import ContentGenerationError
from skilltree.engines.progression.models import QuizQuestion, QuizSection, TextSection

VALID_SECTIONS = [
    {"type": "text", "title": "Claims", "content": "## What is a claim\nA statement to be defended."},
    {
        "type": "quiz",
        "quiz": [
            {
                "question": "Which is a claim?",
                "options": ["The sky is green", "Hello"],
                "correct_answer": "The sky is green",
            }
        ],
    },
]


class TestNormalizeMarkdown:
    def test_heading_glued_to_text_gets_newline(self):
        assert normalize_markdown("Intro text.## Heading\nBody") == "Intro text.\n## Heading\nBody"

    def test_blank_line_runs_collapse(self):
        assert normalize_markdown("Para one\n\n\nPara two") == "Para one\nPara two"

    def test_leading_heading_is_untouched(self):
        assert normalize_markdown("# Title\n\nText") == "# Title\nText"

    def test_heading_glued_to_word_gets_newline(self):
        assert normalize_markdown("Key ideas## Summary\nBody") == "Key ideas\n## Summary\nBody"

    def test_single_hash_heading_after_punctuation(self):
        assert normalize_markdown("The end.# Next part") == "The end.\n# Next part"

    def test_hash_inside_words_is_untouched(self):
        assert normalize_markdown("Learn C# today") == "Learn C# today"

    def test_hash_without_space_is_not_a_heading(self):
        assert normalize_markdown("See issue #5.") == "See issue #5."

    def test_crlf_line_endings(self):
        assert normalize_markdown("a\r\n\r\nb") == "a\nb"


class TestQuizQuestionValidation:
    def test_trimmed_correct_answer_matches_option(self):
        q = QuizQuestion(question="Capital?", options=["Paris", "Rome"], correct_answer=" Paris ")
        assert q.correct_answer == " Paris "

    def test_correct_answer_not_among_options(self):
        with pytest.raises(ValidationError):
            QuizQuestion(question="Capital?", options=["Paris", "Rome"], correct_answer="Berlin")

    def test_correct_answer_matching_two_options(self):
        with pytest.raises(ValidationError):
            QuizQuestion(question="Capital?", options=["Paris", "Paris ", "Rome"], correct_answer="Paris")

    def test_case_differences_do_not_match(self):
        with pytest.raises(ValidationError):
            QuizQuestion(question="Capital?", options=["Paris", "Rome"], correct_answer="paris")

    def test_needs_two_options(self):
        with pytest.raises(ValidationError):
            QuizQuestion(question="Capital?", options=["Paris"], correct_answer="Paris")

    def test_non_string_correct_answer(self):
        with pytest.raises(ValidationError):
            QuizQuestion(question="Pick", options=["1", "2"], correct_answer=1)


class TestClassifyContent:
    @pytest.mark.parametrize("raw", [None, "", "   ", [], {}, 42, {"foo": "bar"}])
    def test_unusable_content(self, raw):
        assert classify_content(raw) is None

    def test_legacy_string(self):
        content = classify_content("# Old lesson\nSome text")
        assert isinstance(content, LegacyText)
        assert content.text == "# Old lesson\nSome text"

    def test_structured_list(self):
        content = classify_content(VALID_SECTIONS)
        assert isinstance(content, StructuredSections)
        assert isinstance(content.sections[0], TextSection)
        assert isinstance(content.sections[1], QuizSection)

    def test_sections_wrapper(self):
        assert isinstance(classify_content({"sections": VALID_SECTIONS}), StructuredSections)

    def test_invalid_quiz_is_malformed(self):
        bad = [{"type": "quiz", "quiz": [{"question": "Q", "options": ["a", "b"], "correct_answer": "c"}]}]
        assert classify_content(bad) is None

    def test_unknown_section_type_is_malformed(self):
        assert classify_content([{"type": "video", "url": "x"}]) is None


class TestParseGeneratedSections:
    def test_fenced_reply_round_trips(self):
        raw = "Here is the lesson:\n```json\n" + json.dumps(VALID_SECTIONS) + "\n```\nEnjoy!"
        sections = parse_generated_sections(raw)
        assert sections_to_documents(sections) == VALID_SECTIONS

    def test_text_sections_are_normalized(self):
        raw = '[{"type": "text", "content": "Intro.## Part\\n\\n\\nBody"}]'
        sections = parse_generated_sections(raw)
        assert sections[0].content == "Intro.\n## Part\nBody"

    def test_single_section_object_is_wrapped(self):
        sections = parse_generated_sections('{"type": "text", "content": "Only one"}')
        assert len(sections) == 1

    def test_malformed_reply_raises_with_raw_text(self):
        with pytest.raises(ContentGenerationError) as exc_info:
            parse_generated_sections("Sorry, I cannot do that.", lesson_id="l1")
        assert exc_info.value.raw_text == "Sorry, I cannot do that."
        assert exc_info.value.lesson_id == "l1"

    def test_invalid_quiz_raises(self):
        raw = '[{"type": "quiz", "quiz": [{"question": "Q", "options": ["a", "b"], "correct_answer": "z"}]}]'
        with pytest.raises(ContentGenerationError) as exc_info:
            parse_generated_sections(raw)
        assert exc_info.value.raw_text == raw

    def test_empty_array_raises(self):
        with pytest.raises(ContentGenerationError):
            parse_generated_sections("[]")

    def test_scalar_json_raises(self):
        with pytest.raises(ContentGenerationError):
            parse_generated_sections('"just a string"')
