"""
Progression endpoints - skill graph, lessons, exercises, reviews, analytics.

There is no authentication layer; the learner is identified by the user id
in the path. Engine errors are translated to HTTP responses by the handlers
registered in skilltree.main.
"""

from typing import List, Optional

from fastapi import APIRouter, HTTPException, status

from skilltree.api.deps import Analytics, Ingestor, Ledger, Repository, Resolver, Scheduler, Tracker
from skilltree.engines.progression import (
    DueReview,
    ExerciseSubmission,
    LearningAnalytics,
    ProgressUpdate,
    TierPolicy,
)
from skilltree.engines.progression.leveling import xp_to_next_level
from skilltree.engines.progression.models import SkillCategoryTree, UserReviewSchedule, UserSkillProgress
from skilltree.schemas.progression import (
    ExerciseSubmitRequest,
    LessonCompletionRequest,
    LessonContentResponse,
    ProfileResponse,
    RecommendationResponse,
    ReviewRequest,
    SkillLessonsContentResponse,
    SkillTiersResponse,
    TierSkill,
    UnlockCheckResponse,
    UnlockedSkillsResponse,
)

router = APIRouter()


# ── Catalogue ───────────────────────────────────────────────────────────


@router.get("/skills/tree", response_model=List[SkillCategoryTree])
async def get_skill_tree(repository: Repository):
    """Active categories with their skills, in display order."""
    return await repository.get_skill_tree()


@router.get("/skills/tiers", response_model=SkillTiersResponse)
async def get_skill_tiers(resolver: Resolver, policy: Optional[TierPolicy] = None):
    """Topological tiers of the active skill graph."""
    tiers = await resolver.compute_tiers(policy)
    return SkillTiersResponse(
        tiers=[[TierSkill(id=s.id, name=s.name, prerequisites=s.prerequisites) for s in tier] for tier in tiers]
    )


@router.get("/lessons/{lesson_id}/content", response_model=LessonContentResponse)
async def get_lesson_content(lesson_id: str, ingestor: Ingestor):
    """Structured lesson content, generated on first request if needed."""
    sections = await ingestor.ensure_lesson_content(lesson_id)
    return LessonContentResponse(lesson_id=lesson_id, sections=sections)


@router.post("/skills/{skill_id}/lessons/content", response_model=SkillLessonsContentResponse)
async def prepare_skill_lessons(skill_id: str, ingestor: Ingestor):
    """Ensure content for every lesson of a skill."""
    lessons = await ingestor.ensure_skill_lessons(skill_id)
    return SkillLessonsContentResponse(skill_id=skill_id, lessons=lessons)


# ── Per-user skills ─────────────────────────────────────────────────────


@router.get("/users/{user_id}/skills/unlocked", response_model=UnlockedSkillsResponse)
async def list_unlocked_skills(user_id: str, resolver: Resolver):
    unlocked = await resolver.unlocked_skill_ids(user_id)
    return UnlockedSkillsResponse(skill_ids=sorted(unlocked))


@router.get("/users/{user_id}/skills/{skill_id}/unlockable", response_model=UnlockCheckResponse)
async def check_unlockable(user_id: str, skill_id: str, resolver: Resolver):
    return UnlockCheckResponse(skill_id=skill_id, unlockable=await resolver.is_unlockable(user_id, skill_id))


@router.post("/users/{user_id}/skills/{skill_id}/unlock", response_model=UserSkillProgress)
async def unlock_skill(user_id: str, skill_id: str, tracker: Tracker):
    progress = await tracker.unlock_skill(user_id, skill_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Prerequisites of skill {skill_id} are not mastered",
        )
    return progress


@router.post("/users/{user_id}/lessons/{lesson_id}/complete", response_model=ProgressUpdate)
async def complete_lesson(user_id: str, lesson_id: str, body: LessonCompletionRequest, tracker: Tracker):
    """Record a lesson completion. Repeating it changes nothing."""
    return await tracker.record_lesson_completion(
        user_id,
        lesson_id,
        time_spent=body.time_spent,
        comprehension_score=body.comprehension_score,
        notes=body.notes,
    )


@router.post(
    "/users/{user_id}/exercises/{exercise_id}/attempts",
    response_model=ExerciseSubmission,
    status_code=status.HTTP_201_CREATED,
)
async def submit_exercise(user_id: str, exercise_id: str, body: ExerciseSubmitRequest, tracker: Tracker):
    """Grade an answer and record the attempt."""
    return await tracker.record_exercise_attempt(user_id, exercise_id, body.answer, time_spent=body.time_spent)


# ── Reviews ─────────────────────────────────────────────────────────────


@router.get("/users/{user_id}/reviews/due", response_model=List[DueReview])
async def list_due_reviews(user_id: str, scheduler: Scheduler):
    return await scheduler.due_for_review(user_id)


@router.post("/users/{user_id}/reviews", response_model=UserReviewSchedule)
async def record_review(user_id: str, body: ReviewRequest, scheduler: Scheduler):
    return await scheduler.record_review(user_id, body.item_id, body.item_type, body.was_correct)


# ── Insights ────────────────────────────────────────────────────────────


@router.get("/users/{user_id}/analytics", response_model=LearningAnalytics)
async def get_learning_analytics(user_id: str, analytics: Analytics):
    return await analytics.learning_analytics(user_id)


@router.get("/users/{user_id}/recommendation", response_model=RecommendationResponse)
async def get_recommended_lesson(user_id: str, analytics: Analytics):
    return RecommendationResponse(lesson=await analytics.recommend_next_lesson(user_id))


@router.get("/users/{user_id}/profile", response_model=ProfileResponse)
async def get_profile(user_id: str, ledger: Ledger):
    profile = await ledger.get_profile(user_id)
    return ProfileResponse(
        user_id=user_id,
        xp=profile.xp,
        level=profile.level,
        xp_to_next_level=xp_to_next_level(profile.xp),
    )
