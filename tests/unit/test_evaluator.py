"""Unit tests for ExerciseEvaluator grading (no persistence)."""

import json
from unittest.mock import AsyncMock

import pytest

from skilltree.ai.text_generation import GenerationError
from skilltree.engines.progression.errors import DataIntegrityError
from skilltree.engines.progression.evaluator import ExerciseEvaluator, degraded_feedback, selected_option
from skilltree.engines.progression.models import Exercise, Verdict


def _mcq(**overrides) -> Exercise:
    fields = dict(
        id="ex1",
        lesson_id="l1",
        skill_id="s1",
        title="Capital city",
        type="mcq",
        content={"question": "Capital of France?", "options": ["Paris", "Lyon"]},
        correct_answer="Paris",
    )
    fields.update(overrides)
    return Exercise(**fields)


def _open_form(**overrides) -> Exercise:
    fields = dict(
        id="ex2",
        lesson_id="l1",
        skill_id="s1",
        title="Rebut the claim",
        type="rebuttal_practice",
        content={"instructions": "Rebut: school uniforms improve grades."},
        ai_evaluation_prompt="Reward evidence-based counterarguments.",
        passing_score=80,
    )
    fields.update(overrides)
    return Exercise(**fields)


def _reply(**fields) -> str:
    return "```json\n" + json.dumps(fields) + "\n```"


@pytest.fixture
def evaluator(generator):
    return ExerciseEvaluator(AsyncMock(), generator)


class TestSelectedOption:
    def test_plain_string(self):
        assert selected_option("Paris") == "Paris"

    def test_selected_option_object(self):
        assert selected_option({"selected_option": "Paris"}) == "Paris"

    def test_unusable_answer(self):
        assert selected_option(["Paris"]) == ""


class TestClosedFormGrading:
    """MCQ: whitespace-insensitive, case-sensitive exact match, no AI call."""

    @pytest.mark.asyncio
    async def test_trailing_space_is_correct(self, evaluator, generator):
        feedback = await evaluator.evaluate(_mcq(), "Paris ")
        assert feedback.verdict == Verdict.CORRECT
        assert feedback.score == 100
        assert feedback.unlock_next is True
        assert generator.calls == 0

    @pytest.mark.asyncio
    async def test_case_difference_is_incorrect(self, evaluator):
        feedback = await evaluator.evaluate(_mcq(), "paris")
        assert feedback.verdict == Verdict.INCORRECT
        assert feedback.score == 0
        assert feedback.unlock_next is False
        assert "Paris" in feedback.explanation

    @pytest.mark.asyncio
    async def test_selected_option_payload(self, evaluator):
        feedback = await evaluator.evaluate(_mcq(), {"selected_option": "Paris"})
        assert feedback.verdict == Verdict.CORRECT

    @pytest.mark.asyncio
    async def test_stored_answer_object(self, evaluator):
        exercise = _mcq(correct_answer={"selected_option": " Paris"})
        feedback = await evaluator.evaluate(exercise, "Paris")
        assert feedback.verdict == Verdict.CORRECT

    @pytest.mark.asyncio
    async def test_missing_correct_answer_is_integrity_error(self, evaluator, generator):
        with pytest.raises(DataIntegrityError):
            await evaluator.evaluate(_mcq(correct_answer=None), "Paris")
        assert generator.calls == 0


class TestAIGrading:
    @pytest.mark.asyncio
    async def test_correct_above_passing_unlocks(self, evaluator, generator):
        generator.queue(
            _reply(verdict="correct", explanation="Solid rebuttal.", improvement_advice=["Cite a study"], skill_score=85)
        )
        feedback = await evaluator.evaluate(_open_form(), "Uniforms do not change study habits.")
        assert feedback.verdict == Verdict.CORRECT
        assert feedback.score == 85
        assert feedback.advice == ["Cite a study"]
        assert feedback.unlock_next is True
        assert feedback.inconclusive is False

    @pytest.mark.asyncio
    async def test_prompt_embeds_rubric_and_answer(self, evaluator, generator):
        generator.queue(_reply(verdict="partial", explanation="ok", skill_score=50))
        await evaluator.evaluate(_open_form(), "My answer text")
        assert "Reward evidence-based counterarguments." in generator.prompts[0]
        assert "My answer text" in generator.prompts[0]
        assert "school uniforms" in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_partial_at_passing_score_unlocks(self, evaluator, generator):
        generator.queue(_reply(verdict="partial", explanation="Close.", skill_score=80))
        feedback = await evaluator.evaluate(_open_form(), "answer")
        assert feedback.unlock_next is True

    @pytest.mark.asyncio
    async def test_correct_below_passing_does_not_unlock(self, evaluator, generator):
        generator.queue(_reply(verdict="correct", explanation="Right idea.", skill_score=70))
        feedback = await evaluator.evaluate(_open_form(), "answer")
        assert feedback.unlock_next is False

    @pytest.mark.asyncio
    async def test_incorrect_never_unlocks(self, evaluator, generator):
        generator.queue(_reply(verdict="incorrect", explanation="Off topic.", skill_score=95, unlock_next_skill=True))
        feedback = await evaluator.evaluate(_open_form(), "answer")
        assert feedback.unlock_next is False

    @pytest.mark.asyncio
    async def test_fractional_score_is_rounded(self, evaluator, generator):
        generator.queue(_reply(verdict="partial", explanation="Hm.", skill_score=84.5))
        feedback = await evaluator.evaluate(_open_form(), "answer")
        assert feedback.score == 85


class TestDegradedGrading:
    """Every AI failure yields partial feedback with score 50 and no unlock."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        [
            "I think this answer is pretty good!",
            '[{"verdict": "correct"}]',
            '{"verdict": "excellent", "explanation": "x", "skill_score": 90}',
            '{"verdict": "correct", "explanation": "x", "skill_score": 150}',
            '{"verdict": "correct"}',
        ],
    )
    async def test_unusable_reply(self, evaluator, generator, reply):
        generator.queue(reply)
        feedback = await evaluator.evaluate(_open_form(), "answer")
        assert feedback.verdict == Verdict.PARTIAL
        assert feedback.score == 50
        assert feedback.unlock_next is False
        assert feedback.inconclusive is True
        assert feedback.advice

    @pytest.mark.asyncio
    async def test_generator_failure(self, evaluator, generator):
        generator.queue(GenerationError("timed out"))
        feedback = await evaluator.evaluate(_open_form(), "answer")
        assert feedback.inconclusive is True
        assert "inconclusive" in feedback.explanation

    def test_degraded_feedback_shape(self):
        feedback = degraded_feedback()
        assert feedback.verdict == Verdict.PARTIAL
        assert feedback.score == 50
        assert feedback.unlock_next is False
