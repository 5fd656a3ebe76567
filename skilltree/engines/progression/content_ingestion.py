"""
Content Ingestion & Validator - turns generated text into trusted lesson content.

Stored lesson content arrives in one of three shapes: structured sections,
a legacy markdown string, or something unusable (absent, empty, malformed).
classify_content maps it onto the LegacyText | StructuredSections variant
once, at this boundary; everything downstream sees a list of sections.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ValidationError

from skilltree.ai.text_generation import GenerationError, TextGenerator
from skilltree.engines.progression.errors import ContentGenerationError
from skilltree.engines.progression.json_extraction import MalformedJSONError, extract_json
from skilltree.engines.progression.models import LESSON_SECTIONS, Lesson, LessonSection, TextSection
from skilltree.engines.progression.prompts import LESSON_CONTENT_SYSTEM_PROMPT, lesson_content_prompt
from skilltree.engines.progression.repository import SkillRepository
from skilltree.kernel.store import DocumentStore
from skilltree.logging_config import get_logger

# Heading marker glued to preceding text ("Key ideas## Next", "end.# Next").
# A single "#" right after a word character is not a heading ("C# ").
_HEADING_WITHOUT_BREAK = re.compile(r"(?<=[^\n#])(?=#{2,6} )|(?<=[^\n#\w])(?=# )")
_BLANK_RUNS = re.compile(r"\n{2,}")
_WRAPPER_KEYS = ("sections", "content", "lesson")


class LegacyText(BaseModel):
    """Lesson content stored as one markdown string."""

    text: str


class StructuredSections(BaseModel):
    sections: List[LessonSection]


LessonContent = Union[LegacyText, StructuredSections]


def normalize_markdown(text: str) -> str:
    """Put headings on their own line and collapse blank-line runs."""
    text = text.replace("\r\n", "\n")
    text = _HEADING_WITHOUT_BREAK.sub("\n", text)
    text = _BLANK_RUNS.sub("\n", text)
    return text.strip()


def normalize_sections(sections: List[LessonSection]) -> List[LessonSection]:
    normalized: List[LessonSection] = []
    for section in sections:
        if isinstance(section, TextSection):
            section = section.model_copy(update={"content": normalize_markdown(section.content)})
        normalized.append(section)
    return normalized


def _unwrap(data: Any) -> Any:
    """Accept {"sections": [...]} style wrappers and a bare single section."""
    if isinstance(data, dict):
        for key in _WRAPPER_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
        if "type" in data:
            return [data]
    return data


def classify_content(raw: Any) -> Optional[LessonContent]:
    """
    Map stored content onto the tagged variant.

    Returns None when the content is absent, empty or malformed and has to
    be generated.
    """
    if isinstance(raw, str):
        return LegacyText(text=raw) if raw.strip() else None
    data = _unwrap(raw)
    if not isinstance(data, list) or not data:
        return None
    try:
        return StructuredSections(sections=LESSON_SECTIONS.validate_python(data))
    except ValidationError:
        return None


def parse_generated_sections(raw_text: str, lesson_id: Optional[str] = None) -> List[LessonSection]:
    """
    Extract, validate and normalize lesson sections from generated text.

    Raises:
        ContentGenerationError: carrying the raw text, on any failure.
    """
    try:
        data = _unwrap(extract_json(raw_text))
    except MalformedJSONError as exc:
        raise ContentGenerationError(
            f"The AI returned malformed lesson content: {exc}", raw_text=raw_text, lesson_id=lesson_id
        ) from exc

    if not isinstance(data, list) or not data:
        raise ContentGenerationError(
            "The AI returned lesson content that is not a non-empty list of sections",
            raw_text=raw_text,
            lesson_id=lesson_id,
        )
    try:
        sections = LESSON_SECTIONS.validate_python(data)
    except ValidationError as exc:
        raise ContentGenerationError(
            f"Generated lesson content failed validation ({exc.error_count()} error(s)): {exc}",
            raw_text=raw_text,
            lesson_id=lesson_id,
        ) from exc
    return normalize_sections(sections)


def sections_to_documents(sections: List[LessonSection]) -> List[Dict[str, Any]]:
    return [s.model_dump(mode="json", exclude_none=True) for s in sections]


class ContentIngestor:
    """
    Ensures lessons carry valid structured content.

    The generator is called only when stored content is unusable; valid
    output is written back onto the lesson, so each lesson normally costs
    at most one generation.
    """

    def __init__(
        self,
        store: DocumentStore,
        generator: TextGenerator,
        repository: Optional[SkillRepository] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.generator = generator
        self.repository = repository or SkillRepository(store)
        self.logger = logger or get_logger(__name__)

    async def ensure_lesson_content(self, lesson: Union[Lesson, str]) -> List[LessonSection]:
        """Return the lesson's sections, generating and persisting them if needed."""
        if isinstance(lesson, str):
            lesson = await self.repository.get_lesson(lesson)

        content = classify_content(lesson.content)
        if isinstance(content, StructuredSections):
            return content.sections
        if isinstance(content, LegacyText):
            self.logger.debug("Lesson %s has legacy text content", lesson.id)
            return [TextSection(title=lesson.title, content=normalize_markdown(content.text))]

        self.logger.info("Generating structured content for lesson %s", lesson.id, extra={"lesson_id": lesson.id})
        return await self.generate_lesson_content(lesson)

    async def generate_lesson_content(self, lesson: Lesson) -> List[LessonSection]:
        """Generate, validate and persist content regardless of what is stored."""
        prompt = lesson_content_prompt(lesson.title, lesson.learning_objectives)
        try:
            raw_text = await self.generator.generate(prompt, LESSON_CONTENT_SYSTEM_PROMPT)
        except GenerationError as exc:
            self.logger.warning("Lesson content generation failed for %s: %s", lesson.id, exc)
            raise ContentGenerationError(
                f"Lesson content generation failed: {exc}", raw_text=None, lesson_id=lesson.id
            ) from exc

        try:
            sections = parse_generated_sections(raw_text, lesson_id=lesson.id)
        except ContentGenerationError:
            self.logger.error(
                "Failed to parse structured lesson content",
                extra={"lesson_id": lesson.id, "raw_response": raw_text[:2000]},
            )
            raise

        await self.repository.save_lesson_content(lesson.id, sections_to_documents(sections))
        self.logger.info(
            "Stored %d generated sections for lesson %s", len(sections), lesson.id, extra={"lesson_id": lesson.id}
        )
        return sections

    async def ensure_skill_lessons(self, skill_id: str) -> Dict[str, List[LessonSection]]:
        """Ensure content for every active lesson of a skill, concurrently."""
        lessons = await self.repository.list_skill_lessons(skill_id)
        results = await asyncio.gather(*(self.ensure_lesson_content(lesson) for lesson in lessons))
        return {lesson.id: sections for lesson, sections in zip(lessons, results)}
