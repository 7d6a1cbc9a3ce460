"""
FastAPI dependencies.

Repositories are imported lazily: importing `repositories.client` requires
Supabase credentials, and tests replace these dependencies with in-memory
stores through `app.dependency_overrides`.
"""

from functools import lru_cache

from services.batch_registry import BatchRegistry
from services.distribution_committer import DistributionStore
from services.distribution_service import DistributionEngine
from services.geocoder import PdokGeocoder
from services.notifications import LoggingNotifier
from services.settings import DistributionSettings, load_settings


@lru_cache
def get_settings() -> DistributionSettings:
    return load_settings()


def get_batch_registry() -> BatchRegistry:
    from repositories import batch_repository

    return batch_repository


def get_distribution_store() -> DistributionStore:
    from repositories import distribution_repository

    return distribution_repository


@lru_cache
def get_engine() -> DistributionEngine:
    from repositories import lead_repository

    settings = get_settings()
    return DistributionEngine(
        geocoder=PdokGeocoder(settings.geocoder_url, timeout=settings.geocoder_timeout_seconds),
        leads=lead_repository,
        batches=get_batch_registry(),
        distributions=get_distribution_store(),
        notifier=LoggingNotifier(),
        settings=settings,
    )
