"""
FastAPI Dependency Providers for the portfolio chat API.

Architecture:
- Settings, service clients, and the background task runner are created once
  per process (lru_cache) and never torn down individually
- The async Supabase client is a lock-guarded singleton
- Repositories and use cases are assembled per request from those singletons

Tests replace any provider through app.dependency_overrides.
"""

import asyncio
from datetime import timedelta
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from supabase import AsyncClient, create_async_client

from application.models.chat import QuotaLimits
from application.use_cases.get_recent_activity import GetRecentActivityUseCase
from application.use_cases.stream_chat import GenerationParams, StreamChatUseCase
from backend.services.ai_client import AsyncAIClient
from backend.services.background import BackgroundTaskRunner
from backend.services.github_client import GitHubClient
from backend.services.quota_service import QuotaService
from backend.services.turnstile import TurnstileVerifier
from backend.settings import Settings, get_settings as _get_settings
from infrastructure.db.async_chat_quota_repository import AsyncSupabaseChatQuotaRepository
from infrastructure.db.async_commit_cache_repository import AsyncSupabaseCommitCacheRepository


# =============================================================================
# Settings Provider
# =============================================================================


def get_settings() -> Settings:
    """
    Get application settings.

    Returns cached Settings instance from backend.settings.
    Use this as a FastAPI dependency for settings access.
    """
    return _get_settings()


# =============================================================================
# Async Supabase Client Provider
# =============================================================================

# Async singleton state (lru_cache doesn't work with async functions)
_async_supabase_client: Optional[AsyncClient] = None
_async_supabase_lock = asyncio.Lock()


async def get_supabase_async_client() -> Optional[AsyncClient]:
    """
    Get async Supabase client instance (singleton).

    Returns None if credentials are not configured, in which case the quota
    store and commit cache are disabled.

    Uses asyncio.Lock so only one client is created under concurrent access.
    """
    global _async_supabase_client

    if _async_supabase_client is not None:
        return _async_supabase_client

    async with _async_supabase_lock:
        # Another coroutine may have initialized while we waited
        if _async_supabase_client is not None:
            return _async_supabase_client

        settings = _get_settings()
        if not settings.supabase_endpoint or not settings.supabase_key:
            return None

        _async_supabase_client = await create_async_client(
            settings.supabase_endpoint, settings.supabase_key
        )
        return _async_supabase_client


# =============================================================================
# Process-wide Services
# =============================================================================


@lru_cache
def get_background_tasks() -> BackgroundTaskRunner:
    """Get the process-wide runner for detached tasks."""
    return BackgroundTaskRunner()


@lru_cache
def get_ai_client() -> Optional[AsyncAIClient]:
    """Get the completion client, or None when OPENAI_API_KEY is unset."""
    settings = _get_settings()
    if not settings.openai_api_key:
        return None
    return AsyncAIClient(
        api_key=settings.openai_api_key,
        helicone_api_key=settings.helicone_api_key,
        helicone_enabled=settings.helicone_enabled,
        default_model=settings.chat_model,
    )


@lru_cache
def get_turnstile_verifier() -> TurnstileVerifier:
    """Get the Turnstile verifier."""
    settings = _get_settings()
    return TurnstileVerifier(
        secret_key=settings.turnstile_secret_key,
        verify_url=settings.turnstile_verify_url,
        timeout=settings.turnstile_timeout_seconds,
    )


@lru_cache
def get_github_client() -> GitHubClient:
    """Get the GitHub REST client."""
    settings = _get_settings()
    return GitHubClient(token=settings.github_token, base_url=settings.github_api_url)


# =============================================================================
# Repository Providers
# =============================================================================


async def get_chat_quota_repository(
    client: Optional[AsyncClient] = Depends(get_supabase_async_client),
) -> Optional[AsyncSupabaseChatQuotaRepository]:
    """Get chat quota repository, or None without a database."""
    if client is None:
        return None
    return AsyncSupabaseChatQuotaRepository(client)


async def get_commit_cache_repository(
    client: Optional[AsyncClient] = Depends(get_supabase_async_client),
) -> Optional[AsyncSupabaseCommitCacheRepository]:
    """Get commit cache repository, or None without a database."""
    if client is None:
        return None
    return AsyncSupabaseCommitCacheRepository(client)


# =============================================================================
# Service and Use Case Providers
# =============================================================================


def get_quota_service(
    repository: Optional[AsyncSupabaseChatQuotaRepository] = Depends(get_chat_quota_repository),
    settings: Settings = Depends(get_settings),
) -> QuotaService:
    """Get quota service with limits from settings."""
    limits = QuotaLimits(
        max_requests=settings.rate_limit_max_requests,
        max_tokens=settings.rate_limit_max_tokens,
        window=timedelta(seconds=settings.rate_limit_window_seconds),
    )
    return QuotaService(repository, limits)


def get_stream_chat_use_case(
    quota: QuotaService = Depends(get_quota_service),
    verifier: TurnstileVerifier = Depends(get_turnstile_verifier),
    ai_client: Optional[AsyncAIClient] = Depends(get_ai_client),
    tasks: BackgroundTaskRunner = Depends(get_background_tasks),
    settings: Settings = Depends(get_settings),
) -> StreamChatUseCase:
    """Get the chat streaming use case."""
    return StreamChatUseCase(
        quota=quota,
        verifier=verifier,
        ai_client=ai_client,
        tasks=tasks,
        generation=GenerationParams(
            max_tokens=settings.chat_max_tokens,
            temperature=settings.chat_temperature,
            model=settings.chat_model,
        ),
        max_input_length=settings.max_input_length,
        history_window=settings.history_window,
    )


def get_recent_activity_use_case(
    github: GitHubClient = Depends(get_github_client),
    cache: Optional[AsyncSupabaseCommitCacheRepository] = Depends(get_commit_cache_repository),
    tasks: BackgroundTaskRunner = Depends(get_background_tasks),
    settings: Settings = Depends(get_settings),
) -> GetRecentActivityUseCase:
    """Get the recent activity use case."""
    return GetRecentActivityUseCase(
        github=github,
        cache=cache,
        tasks=tasks,
        ttl_seconds=settings.commit_cache_ttl_seconds,
        per_page=settings.github_commits_per_page,
    )
