"""
FastAPI dependencies wiring the engine components to the store and generator.

Tests replace get_document_store and get_text_generator through
app.dependency_overrides; every component below is built from those two.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from skilltree.ai.text_generation import OpenAICompatibleGenerator, TextGenerator
from skilltree.config import get_settings
from skilltree.database import async_session_maker
from skilltree.engines.progression import (
    AnalyticsService,
    ContentIngestor,
    DependencyResolver,
    MasteryTracker,
    ReviewScheduler,
    SkillRepository,
    TierPolicy,
    XPLedger,
)
from skilltree.kernel.store import DocumentStore, SqlDocumentStore


def get_document_store() -> DocumentStore:
    """Document store on the application's session factory."""
    return SqlDocumentStore(async_session_maker)


@lru_cache
def get_text_generator() -> TextGenerator:
    """Shared generator; one HTTP client per process."""
    return OpenAICompatibleGenerator.from_settings(get_settings())


Store = Annotated[DocumentStore, Depends(get_document_store)]
Generator = Annotated[TextGenerator, Depends(get_text_generator)]


def get_repository(store: Store) -> SkillRepository:
    return SkillRepository(store)


Repository = Annotated[SkillRepository, Depends(get_repository)]


def get_resolver(store: Store, repository: Repository) -> DependencyResolver:
    return DependencyResolver(store, repository, tier_policy=TierPolicy(get_settings().tier_policy))


Resolver = Annotated[DependencyResolver, Depends(get_resolver)]


def get_mastery_tracker(
    store: Store, generator: Generator, repository: Repository, resolver: Resolver
) -> MasteryTracker:
    return MasteryTracker(store, generator, repository=repository, resolver=resolver)


def get_content_ingestor(store: Store, generator: Generator, repository: Repository) -> ContentIngestor:
    return ContentIngestor(store, generator, repository=repository)


def get_review_scheduler(store: Store, repository: Repository) -> ReviewScheduler:
    return ReviewScheduler(store, repository)


def get_analytics(store: Store, repository: Repository, resolver: Resolver) -> AnalyticsService:
    return AnalyticsService(store, repository=repository, resolver=resolver)


def get_ledger(store: Store) -> XPLedger:
    return XPLedger(store)


Tracker = Annotated[MasteryTracker, Depends(get_mastery_tracker)]
Ingestor = Annotated[ContentIngestor, Depends(get_content_ingestor)]
Scheduler = Annotated[ReviewScheduler, Depends(get_review_scheduler)]
Analytics = Annotated[AnalyticsService, Depends(get_analytics)]
Ledger = Annotated[XPLedger, Depends(get_ledger)]
