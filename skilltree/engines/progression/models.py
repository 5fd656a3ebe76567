"""
Domain models for the progression engine (Pydantic).

Documents are stored as `model_dump(mode="json")` and read back with
`model_validate`, so every model ignores unknown fields written by other
tools sharing the collections.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator


class Collections:
    """Collection names in the document store."""

    SKILL_CATEGORIES = "skill_categories"
    SKILLS = "skills"
    SKILL_DEPENDENCIES = "skill_dependencies"
    LESSONS = "lessons"
    EXERCISES = "exercises"
    USER_SKILL_PROGRESS = "user_skill_progress"
    USER_EXERCISE_ATTEMPTS = "user_exercise_attempts"
    USER_LESSON_COMPLETIONS = "user_lesson_completions"
    USER_REVIEW_SCHEDULE = "user_review_schedule"
    USER_LEARNING_GOALS = "user_learning_goals"
    PROFILES = "profiles"
    XP_LOGS = "xp_logs"


class DifficultyLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


DIFFICULTY_ORDER = {
    DifficultyLevel.BEGINNER: 1,
    DifficultyLevel.INTERMEDIATE: 2,
    DifficultyLevel.ADVANCED: 3,
}


class ExerciseType(str, Enum):
    """Exercise formats. Only MCQ is graded without the AI capability."""
    MCQ = "mcq"
    TEXT_INPUT = "text_input"
    SPEECH_ANALYSIS = "speech_analysis"
    DRAG_AND_DROP = "drag_and_drop"
    REBUTTAL_PRACTICE = "rebuttal_practice"
    FALLACY_IDENTIFICATION = "fallacy_identification"


CLOSED_FORM_TYPES = frozenset({ExerciseType.MCQ})


class ItemType(str, Enum):
    """Reviewable item kinds."""
    LESSON = "lesson"
    EXERCISE = "exercise"


class Verdict(str, Enum):
    CORRECT = "correct"
    PARTIAL = "partial"
    INCORRECT = "incorrect"


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


# ── Catalogue (read-only to the engine) ─────────────────────────────────


class SkillCategory(_Document):
    id: str
    name: str
    description: str = ""
    display_order: int = 0
    is_active: bool = True


class Skill(_Document):
    id: str
    category_id: str
    name: str
    description: str = ""
    difficulty_level: DifficultyLevel = DifficultyLevel.BEGINNER
    xp_reward: int = Field(0, ge=0)
    mastery_threshold: int = Field(80, ge=0, le=100)
    display_order: int = 0
    is_active: bool = True
    prerequisites: List[str] = Field(default_factory=list)


class SkillDependency(_Document):
    """Directed edge: from_skill_id is a prerequisite of to_skill_id."""

    from_skill_id: str
    to_skill_id: str


class SkillCategoryTree(SkillCategory):
    skills: List[Skill] = Field(default_factory=list)


class Lesson(_Document):
    id: str
    skill_id: str
    category_id: Optional[str] = None
    title: str
    description: str = ""
    # Raw stored content: structured sections, a legacy string, or garbage.
    content: Any = None
    learning_objectives: List[str] = Field(default_factory=list)
    estimated_duration: int = 0
    display_order: int = 0
    is_active: bool = True


class Exercise(_Document):
    id: str
    lesson_id: str
    skill_id: str
    title: str
    type: ExerciseType
    content: Dict[str, Any] = Field(default_factory=dict)
    correct_answer: Any = None
    ai_evaluation_prompt: str = ""
    max_attempts: int = Field(0, ge=0)  # 0 = unlimited
    passing_score: int = Field(80, ge=0, le=100)
    xp_reward: int = Field(0, ge=0)
    display_order: int = 0
    is_active: bool = True

    @property
    def correct_option(self) -> Optional[str]:
        """Stored correct option for closed-form exercises."""
        answer = self.correct_answer
        if isinstance(answer, dict):
            answer = answer.get("selected_option")
        return answer if isinstance(answer, str) else None


# ── Lesson content ──────────────────────────────────────────────────────


class QuizQuestion(BaseModel):
    question: str
    options: List[str] = Field(min_length=2)
    correct_answer: str

    @model_validator(mode="after")
    def _correct_answer_matches_one_option(self) -> "QuizQuestion":
        wanted = self.correct_answer.strip()
        matches = sum(1 for option in self.options if option.strip() == wanted)
        if matches != 1:
            raise ValueError(
                f"correct_answer {self.correct_answer!r} must match exactly one option, matched {matches}"
            )
        return self


class TextSection(BaseModel):
    type: Literal["text"] = "text"
    title: Optional[str] = None
    content: str


class QuizSection(BaseModel):
    type: Literal["quiz"] = "quiz"
    title: Optional[str] = None
    quiz: List[QuizQuestion] = Field(min_length=1)


LessonSection = Annotated[Union[TextSection, QuizSection], Field(discriminator="type")]

LESSON_SECTIONS = TypeAdapter(List[LessonSection])


# ── Per-user state ──────────────────────────────────────────────────────


class UserSkillProgress(_Document):
    user_id: str
    skill_id: str
    mastery_level: int = Field(0, ge=0, le=100)
    is_unlocked: bool = False
    is_mastered: bool = False
    total_xp_earned: int = 0
    lessons_completed: int = 0
    exercises_completed: int = 0
    first_unlocked_at: Optional[datetime] = None
    mastered_at: Optional[datetime] = None
    last_practiced_at: Optional[datetime] = None


class AIFeedback(BaseModel):
    """Feedback for one submission. AI replies may use the legacy key names."""

    model_config = ConfigDict(extra="ignore")

    verdict: Verdict
    explanation: str
    advice: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("advice", "improvement_advice"),
    )
    score: int = Field(ge=0, le=100, validation_alias=AliasChoices("score", "skill_score"))
    unlock_next: bool = Field(False, validation_alias=AliasChoices("unlock_next", "unlock_next_skill"))
    inconclusive: bool = False

    @field_validator("score", mode="before")
    @classmethod
    def _round_fractional_score(cls, value: Any) -> Any:
        if isinstance(value, float):
            return int(value + 0.5) if value >= 0 else value
        return value


class ExerciseAttempt(_Document):
    """Append-only record of one graded submission."""

    user_id: str
    exercise_id: str
    skill_id: str
    attempt_number: int = Field(ge=1)
    user_answer: Any = None
    score: int
    # True when the attempt counts toward the skill (feedback.unlock_next)
    is_correct: bool
    feedback: AIFeedback
    time_spent: int = 0
    completed_at: datetime


class UserLessonCompletion(_Document):
    user_id: str
    lesson_id: str
    skill_id: str
    time_spent: int = 0
    comprehension_score: float = 0
    notes: Optional[str] = None
    completed_at: datetime


class UserReviewSchedule(_Document):
    user_id: str
    item_id: str
    item_type: ItemType
    skill_id: Optional[str] = None
    review_at: datetime
    ease_factor: float = 2.5
    interval: int = Field(1, ge=1)
    repetitions: int = Field(0, ge=0)
    last_reviewed_at: Optional[datetime] = None


class UserProfile(_Document):
    user_id: str
    xp: int = 0
    level: int = 1


class XPLogEntry(_Document):
    user_id: str
    amount: int
    reason: str
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    created_at: datetime


class UserLearningGoals(_Document):
    user_id: str
    goals: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


# ── Document keys ───────────────────────────────────────────────────────


def progress_key(user_id: str, skill_id: str) -> str:
    return f"{user_id}_{skill_id}"


def completion_key(user_id: str, lesson_id: str) -> str:
    return f"{user_id}_{lesson_id}"


def attempt_key(user_id: str, exercise_id: str, attempt_number: int) -> str:
    return f"{user_id}_{exercise_id}_{attempt_number}"


def xp_award_key(user_id: str, item_type: str, item_id: str) -> str:
    return f"{user_id}_{item_type}_{item_id}"


def schedule_key(user_id: str, item_type: ItemType, item_id: str) -> str:
    return f"{user_id}_{ItemType(item_type).value}_{item_id}"
