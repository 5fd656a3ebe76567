"""
Exercise Evaluator - grades submissions and appends attempt records.

Closed-form exercises are graded locally. Everything else goes to the text
generator; any failure along that path (transport error, timeout,
unparseable or invalid reply) yields degraded partial feedback instead of
an exception.
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ValidationError

from skilltree.ai.text_generation import GenerationError, TextGenerator
from skilltree.engines.progression.errors import AttemptLimitError, DataIntegrityError
from skilltree.engines.progression.json_extraction import MalformedJSONError, extract_json
from skilltree.engines.progression.models import (
    CLOSED_FORM_TYPES,
    AIFeedback,
    Collections,
    Exercise,
    ExerciseAttempt,
    Verdict,
    attempt_key,
)
from skilltree.engines.progression.prompts import EXERCISE_EVALUATION_SYSTEM_PROMPT, exercise_evaluation_prompt
from skilltree.kernel.store import DocumentExistsError, DocumentStore
from skilltree.logging_config import get_logger


def selected_option(answer: Any) -> str:
    """The option a learner picked; accepts a bare string or {"selected_option": ...}."""
    if isinstance(answer, dict):
        answer = answer.get("selected_option")
    return answer if isinstance(answer, str) else ""


def degraded_feedback(reason: str = "") -> AIFeedback:
    """Feedback used when the AI grade could not be obtained."""
    explanation = "Automatic grading was inconclusive, so this answer could not be fully assessed."
    if reason:
        explanation = f"{explanation} ({reason})"
    return AIFeedback(
        verdict=Verdict.PARTIAL,
        explanation=explanation,
        advice=["Please try submitting your answer again in a moment."],
        score=50,
        unlock_next=False,
        inconclusive=True,
    )


class ExerciseEvaluator:
    """
    Grades exercise answers and records attempts.

    MCQ matching ignores surrounding whitespace but not case.
    """

    CREATE_RETRIES = 3
    PASSING_VERDICTS = frozenset({Verdict.CORRECT, Verdict.PARTIAL})

    def __init__(
        self,
        store: DocumentStore,
        generator: TextGenerator,
        logger: Optional[logging.Logger] = None,
    ):
        self.store = store
        self.generator = generator
        self.logger = logger or get_logger(__name__)

    # ── Grading ──────────────────────────────────────────────────────────

    async def evaluate(self, exercise: Exercise, answer: Any) -> AIFeedback:
        if exercise.type in CLOSED_FORM_TYPES:
            return self.grade_closed_form(exercise, answer)
        return await self.grade_with_ai(exercise, answer)

    def grade_closed_form(self, exercise: Exercise, answer: Any) -> AIFeedback:
        expected = exercise.correct_option
        if expected is None or not expected.strip():
            raise DataIntegrityError(f"Exercise {exercise.id} has no correct answer configured")

        correct = selected_option(answer).strip() == expected.strip()
        if correct:
            return AIFeedback(
                verdict=Verdict.CORRECT,
                explanation="Correct!",
                score=100,
                unlock_next=True,
            )
        return AIFeedback(
            verdict=Verdict.INCORRECT,
            explanation=f"Not quite. The correct answer is: {expected.strip()}",
            advice=["Review the lesson material and try again."],
            score=0,
            unlock_next=False,
        )

    async def grade_with_ai(self, exercise: Exercise, answer: Any) -> AIFeedback:
        prompt = exercise_evaluation_prompt(
            title=exercise.title,
            exercise_type=exercise.type.value,
            instructions=str(exercise.content.get("instructions") or ""),
            rubric=exercise.ai_evaluation_prompt,
            submitted_answer=answer,
        )
        try:
            raw_text = await self.generator.generate(prompt, EXERCISE_EVALUATION_SYSTEM_PROMPT)
        except GenerationError as exc:
            self.logger.warning("AI evaluation failed for exercise %s: %s", exercise.id, exc)
            return degraded_feedback("the grading service was unavailable")

        try:
            data = extract_json(raw_text)
            if not isinstance(data, dict):
                raise MalformedJSONError("Expected a JSON object", raw_text)
            feedback = AIFeedback.model_validate(data)
        except (MalformedJSONError, ValidationError) as exc:
            self.logger.warning(
                "Unusable AI evaluation for exercise %s: %s",
                exercise.id,
                exc,
                extra={"exercise_id": exercise.id, "raw_response": raw_text[:2000]},
            )
            return degraded_feedback("the grading reply could not be read")

        unlock_next = feedback.verdict in self.PASSING_VERDICTS and feedback.score >= exercise.passing_score
        return feedback.model_copy(update={"unlock_next": unlock_next, "inconclusive": False})

    # ── Attempts ─────────────────────────────────────────────────────────

    async def list_attempts(self, user_id: str, exercise_id: str) -> List[ExerciseAttempt]:
        docs = await self.store.query(
            Collections.USER_EXERCISE_ATTEMPTS,
            where={"user_id": user_id, "exercise_id": exercise_id},
            order_by="attempt_number",
        )
        return [ExerciseAttempt.model_validate(d) for d in docs]

    async def _next_attempt_number(self, user_id: str, exercise: Exercise) -> int:
        attempts = await self.list_attempts(user_id, exercise.id)
        used = max((a.attempt_number for a in attempts), default=0)
        if exercise.max_attempts and used >= exercise.max_attempts:
            raise AttemptLimitError(exercise.id, exercise.max_attempts)
        return used + 1

    async def submit(
        self,
        user_id: str,
        exercise: Exercise,
        answer: Any,
        time_spent: int = 0,
        now: Optional[datetime] = None,
    ) -> ExerciseAttempt:
        """
        Grade `answer` and append an immutable attempt.

        The limit is checked before grading so an exhausted exercise costs no
        generation call. Attempt numbers are claimed with create-if-absent;
        a concurrent submission that took the same number forces a recount.

        Raises:
            AttemptLimitError: the exercise's max_attempts are used up.
            DataIntegrityError: the exercise cannot be graded.
        """
        await self._next_attempt_number(user_id, exercise)
        feedback = await self.evaluate(exercise, answer)
        now = now or datetime.now(timezone.utc)

        for _ in range(self.CREATE_RETRIES):
            number = await self._next_attempt_number(user_id, exercise)
            attempt = ExerciseAttempt(
                user_id=user_id,
                exercise_id=exercise.id,
                skill_id=exercise.skill_id,
                attempt_number=number,
                user_answer=answer,
                score=feedback.score,
                is_correct=feedback.unlock_next,
                feedback=feedback,
                time_spent=time_spent,
                completed_at=now,
            )
            try:
                await self.store.create(
                    Collections.USER_EXERCISE_ATTEMPTS,
                    attempt_key(user_id, exercise.id, number),
                    attempt.to_document(),
                )
            except DocumentExistsError:
                self.logger.info("Attempt %d on %s already taken, recounting", number, exercise.id)
                continue
            self.logger.info(
                "Recorded attempt %d on exercise %s: %s (%d)",
                number,
                exercise.id,
                feedback.verdict.value,
                feedback.score,
                extra={"user_id": user_id, "exercise_id": exercise.id},
            )
            return attempt

        raise DataIntegrityError(f"Could not allocate an attempt number for exercise {exercise.id}")
