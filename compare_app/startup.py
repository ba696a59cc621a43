"""Build process-wide services once per worker."""

from typing import Callable, Optional

from sqlalchemy.orm import Session

from compare_app.core.config import Settings, get_settings
from compare_app.core.logging import logger
from compare_app.services.deduplicator import ComparisonDeduplicator
from compare_app.services.orchestrator import Orchestrator
from compare_app.services.provider import GeminiProvider, TextGenerator
from compare_app.services.rate_limiter import RateLimiter
from compare_app.services.result_cache import ResultCache


def build_orchestrator(
    settings: Settings,
    session_factory: Callable[[], Session],
    provider: Optional[TextGenerator] = None,
) -> Orchestrator:
    """Wire limiter, cache, deduplicator and provider from settings."""
    if provider is None:
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY is not set; provider calls will fail")
        provider = GeminiProvider(
            api_key=settings.gemini_api_key or "",
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.provider_timeout_seconds,
        )
    return Orchestrator(
        limiter=RateLimiter(settings.rate_limit_per_minute, settings.rate_limit_per_day),
        cache=ResultCache(),
        deduplicator=ComparisonDeduplicator(session_factory),
        provider=provider,
        cache_ttl=settings.cache_ttl_seconds,
        history_window=settings.history_window,
        chat_fallback=settings.chat_fallback_enabled,
    )


def startup(app=None) -> Orchestrator:
    """Create tables and the shared orchestrator. Call once per worker at process start."""
    from compare_app.db.session import SessionLocal, init_db

    settings = get_settings()
    init_db()
    orchestrator = build_orchestrator(settings, SessionLocal)

    if app is not None:
        app.state.orchestrator = orchestrator
        app.state.ready = True
    logger.info(
        f"Startup complete; limits {settings.rate_limit_per_minute}/min "
        f"{settings.rate_limit_per_day}/day, cache ttl {settings.cache_ttl_seconds}s"
    )
    return orchestrator
