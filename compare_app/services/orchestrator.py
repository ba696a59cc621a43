"""Turns a raw query into a cached, rate-limited, persisted comparison."""

import hashlib
import json
import re
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence

from compare_app.core.logging import logger
from compare_app.core.metrics import (
    CACHE_LOOKUPS,
    PERSISTENCE_FAILURES,
    PROVIDER_CALLS,
    RATE_LIMITED,
)
from compare_app.schemas.outcomes import (
    ChatResult,
    ComparisonResult,
    NoProductsFound,
    Outcome,
    ProviderFailure,
    RateLimited,
)
from compare_app.services.deduplicator import ComparisonDeduplicator
from compare_app.services.normalizer import comparison_key, normalize
from compare_app.services.provider import (
    TextGenerator,
    build_chat_prompt,
    build_comparison_prompt,
    extract_payload,
)
from compare_app.services.query_splitter import QuerySplitter
from compare_app.services.rate_limiter import RateLimiter
from compare_app.services.result_cache import ResultCache

Message = Dict[str, Any]
Scheduler = Callable[..., None]

_WHITESPACE = re.compile(r"\s+")


def _run_inline(fn: Callable[..., None], *args: Any) -> None:
    fn(*args)


def fingerprint(raw_query: str, history: Sequence[Message] = ()) -> str:
    """Cache key from the query text and the conversation length."""
    payload = {
        "query": _WHITESPACE.sub(" ", raw_query or "").strip().lower(),
        "bucket": len(history),
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()


class Orchestrator:
    """
    Entry point of the arbitration layer.

    Cache hits skip the rate limiter since they make no outbound call. On a
    miss the limiter is consulted, the query is split into two product names
    and the provider is called with no lock held. Quota is only consumed by
    successful calls. Persistence runs through ``schedule`` after the result
    is final; its failures are logged and never reach the caller.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        cache: ResultCache,
        deduplicator: ComparisonDeduplicator,
        provider: TextGenerator,
        cache_ttl: float = 600,
        history_window: int = 5,
        chat_fallback: bool = False,
        splitter: Optional[QuerySplitter] = None,
    ):
        self.limiter = limiter
        self.cache = cache
        self.deduplicator = deduplicator
        self.provider = provider
        self.cache_ttl = cache_ttl
        self.history_window = history_window
        self.chat_fallback = chat_fallback
        self.splitter = splitter or QuerySplitter()

    def handle(
        self,
        raw_query: str,
        history: Sequence[Message] = (),
        schedule: Optional[Scheduler] = None,
        session_id: Optional[str] = None,
    ) -> Outcome:
        schedule = schedule or _run_inline
        history = list(history or [])
        fp = fingerprint(raw_query, history)

        cached = self.cache.get(fp)
        if cached is not None:
            CACHE_LOOKUPS.labels(result="hit").inc()
            logger.info(f"Cache hit for {fp[:12]}")
            result = replace(cached, cached=True, query=raw_query)
            self._after_success(result, history, schedule, session_id)
            return result
        CACHE_LOOKUPS.labels(result="miss").inc()

        if not self.limiter.admit():
            RATE_LIMITED.inc()
            remaining = self.limiter.remaining()
            logger.warning(f"Rate limit reached; remaining={remaining.as_dict()}")
            return RateLimited(remaining=remaining)

        pair = self.splitter.split(raw_query)
        if pair is None or not normalize(pair[0]) or not normalize(pair[1]):
            if self.chat_fallback:
                return self._chat(raw_query, history, fp, schedule, session_id)
            logger.info("No product pair found in query")
            return NoProductsFound(query=raw_query)

        product1, product2 = pair
        prompt = build_comparison_prompt(product1, product2, history, self.history_window)
        try:
            payload = extract_payload(self.provider.generate(prompt))
        except Exception as e:
            PROVIDER_CALLS.labels(outcome="failure").inc()
            logger.warning(f"Provider call failed for '{product1}' vs '{product2}': {e}")
            return ProviderFailure(reason=str(e))
        PROVIDER_CALLS.labels(outcome="success").inc()

        self.limiter.record_usage()
        result = ComparisonResult(
            query=raw_query,
            product1=product1,
            product2=product2,
            key=comparison_key(product1, product2),
            comparison=payload,
        )
        self.cache.set(fp, result, self.cache_ttl)
        self._after_success(result, history, schedule, session_id)
        return result

    def _chat(
        self,
        raw_query: str,
        history: List[Message],
        fp: str,
        schedule: Scheduler,
        session_id: Optional[str],
    ) -> Outcome:
        prompt = build_chat_prompt(raw_query, history, self.history_window)
        try:
            text = self.provider.generate(prompt)
        except Exception as e:
            PROVIDER_CALLS.labels(outcome="failure").inc()
            logger.warning(f"Provider chat call failed: {e}")
            return ProviderFailure(reason=str(e))
        if not text or not text.strip():
            PROVIDER_CALLS.labels(outcome="failure").inc()
            return ProviderFailure(reason="Empty provider response")
        PROVIDER_CALLS.labels(outcome="success").inc()

        self.limiter.record_usage()
        result = ChatResult(query=raw_query, response=text)
        self.cache.set(fp, result, self.cache_ttl)
        self._after_success(result, history, schedule, session_id)
        return result

    def _after_success(
        self,
        result: Outcome,
        history: List[Message],
        schedule: Scheduler,
        session_id: Optional[str],
    ) -> None:
        if isinstance(result, ComparisonResult):
            schedule(
                self._persist_comparison,
                result.product1,
                result.product2,
                result.comparison,
                history,
            )
            answer = json.dumps(result.comparison)
        else:
            answer = result.response
        if session_id:
            schedule(
                self._persist_conversation,
                session_id,
                [
                    {"role": "user", "content": result.query},
                    {"role": "assistant", "content": answer},
                ],
            )

    def _persist_comparison(
        self,
        product1: str,
        product2: str,
        payload: Dict[str, Any],
        history: List[Message],
    ) -> None:
        try:
            record = self.deduplicator.upsert(product1, product2, payload, history)
            logger.info(
                f"Comparison now has {record.view_count} views",
                extra={"comparison_key": record.key},
            )
        except Exception as e:
            PERSISTENCE_FAILURES.inc()
            logger.error(
                f"Failed to persist comparison: {e}",
                exc_info=True,
                extra={"comparison_key": comparison_key(product1, product2)},
            )

    def _persist_conversation(self, session_id: str, messages: List[Message]) -> None:
        try:
            self.deduplicator.save_conversation(session_id, messages)
        except Exception as e:
            PERSISTENCE_FAILURES.inc()
            logger.error(
                f"Failed to save conversation: {e}", exc_info=True, extra={"session_id": session_id}
            )
