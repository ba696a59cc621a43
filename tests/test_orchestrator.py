"""
Tests for the arbitration flow: cache, throttle, split, provider, persistence.
"""
import json
from datetime import datetime

import pytest
from sqlalchemy import func, select

from compare_app.db.models import Comparison, Conversation
from compare_app.schemas.outcomes import (
    ChatResult,
    ComparisonResult,
    NoProductsFound,
    ProviderFailure,
    RateLimited,
)
from compare_app.services.deduplicator import PersistenceFailure
from compare_app.services.orchestrator import Orchestrator, fingerprint
from compare_app.services.provider import ProviderError
from compare_app.services.rate_limiter import RateLimiter
from compare_app.services.result_cache import ResultCache
from tests.conftest import VALID_COMPARISON, StubProvider


def stored(session_factory, key):
    with session_factory() as db:
        return db.execute(select(Comparison).where(Comparison.key == key)).scalar_one_or_none()


class TestFingerprint:

    def test_whitespace_and_case_insensitive(self):
        assert fingerprint("MacBook Air vs Dell XPS 13") == fingerprint("  macbook air   VS dell xps 13 ")

    def test_history_length_changes_fingerprint(self):
        history = [{"role": "user", "content": "x"}]
        assert fingerprint("a vs b") != fingerprint("a vs b", history)

    def test_same_length_history_shares_fingerprint(self):
        assert fingerprint("a vs b", [{"role": "user", "content": "x"}]) == fingerprint(
            "a vs b", [{"role": "user", "content": "y"}]
        )


class TestEndToEnd:

    def test_first_request_creates_record(self, orchestrator, provider, session_factory):
        result = orchestrator.handle("MacBook Air vs Dell XPS 13")

        assert isinstance(result, ComparisonResult)
        assert result.key == "macbook-air-vs-dell-xps-13"
        assert result.comparison == VALID_COMPARISON
        assert result.cached is False
        assert provider.calls == 1

        row = stored(session_factory, "macbook-air-vs-dell-xps-13")
        assert row.view_count == 1
        assert json.loads(row.generated_content) == VALID_COMPARISON

    def test_repeat_request_served_from_cache_and_counted(self, orchestrator, provider, session_factory):
        orchestrator.handle("MacBook Air vs Dell XPS 13")
        second = orchestrator.handle("MacBook Air vs Dell XPS 13")

        assert isinstance(second, ComparisonResult)
        assert second.cached is True
        assert second.comparison == VALID_COMPARISON
        assert provider.calls == 1
        assert stored(session_factory, "macbook-air-vs-dell-xps-13").view_count == 2
        assert orchestrator.limiter.remaining().per_minute == 59

    def test_cache_expiry_triggers_new_provider_call(self, orchestrator, provider, clock):
        orchestrator.handle("Pixel 8 vs iPhone 15")
        clock.advance(601)
        result = orchestrator.handle("Pixel 8 vs iPhone 15")

        assert result.cached is False
        assert provider.calls == 2

    def test_prompt_contains_split_products(self, orchestrator, provider):
        orchestrator.handle("Compare iPhone 15 Pro vs Samsung Galaxy S24")
        assert "Compare iPhone 15 Pro vs Samsung Galaxy S24." in provider.prompts[0]


class TestRateLimiting:

    def test_rate_limited_when_quota_exhausted(self, deduplicator, provider, clock):
        orchestrator = Orchestrator(
            limiter=RateLimiter(1, 100, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=provider,
        )
        assert isinstance(orchestrator.handle("A1 vs B1"), ComparisonResult)

        result = orchestrator.handle("A2 vs B2")
        assert isinstance(result, RateLimited)
        assert result.remaining.per_minute == 0
        assert result.remaining.per_day == 99
        assert provider.calls == 1

    def test_cache_hit_bypasses_rate_limit(self, deduplicator, provider, clock):
        orchestrator = Orchestrator(
            limiter=RateLimiter(1, 100, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=provider,
        )
        orchestrator.handle("A1 vs B1")
        result = orchestrator.handle("A1 vs B1")

        assert isinstance(result, ComparisonResult)
        assert result.cached is True

    def test_rate_limit_checked_before_split(self, deduplicator, provider, clock):
        orchestrator = Orchestrator(
            limiter=RateLimiter(1, 100, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=provider,
        )
        orchestrator.limiter.record_usage()
        assert isinstance(orchestrator.handle("no pair here"), RateLimited)


class TestFailures:

    def test_no_products_found(self, orchestrator, provider):
        result = orchestrator.handle("just a statement with no separators")
        assert isinstance(result, NoProductsFound)
        assert provider.calls == 0

    def test_degenerate_names_are_no_products(self, orchestrator, provider):
        assert isinstance(orchestrator.handle("??? vs !!!"), NoProductsFound)
        assert provider.calls == 0

    def test_provider_exception_does_not_consume_quota(self, deduplicator, clock, session_factory):
        provider = StubProvider(error=ProviderError("upstream down"))
        orchestrator = Orchestrator(
            limiter=RateLimiter(60, 1500, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=provider,
        )
        result = orchestrator.handle("A1 vs B1")

        assert isinstance(result, ProviderFailure)
        assert "upstream down" in result.reason
        assert orchestrator.limiter.remaining().per_minute == 60
        assert len(orchestrator.cache) == 0
        assert stored(session_factory, "a1-vs-b1") is None

    def test_unexpected_provider_exception_is_provider_failure(self, deduplicator, clock):
        orchestrator = Orchestrator(
            limiter=RateLimiter(60, 1500, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=StubProvider(error=RuntimeError("socket closed")),
        )
        assert isinstance(orchestrator.handle("A1 vs B1"), ProviderFailure)

    def test_malformed_output_is_provider_failure(self, deduplicator, clock):
        orchestrator = Orchestrator(
            limiter=RateLimiter(60, 1500, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=StubProvider(response="I cannot help with that."),
        )
        result = orchestrator.handle("A1 vs B1")

        assert isinstance(result, ProviderFailure)
        assert orchestrator.limiter.remaining().per_minute == 60

    def test_persistence_failure_still_returns_result(self, orchestrator, provider, monkeypatch):
        def broken_upsert(*args, **kwargs):
            raise PersistenceFailure("db down")

        monkeypatch.setattr(orchestrator.deduplicator, "upsert", broken_upsert)
        result = orchestrator.handle("A1 vs B1")

        assert isinstance(result, ComparisonResult)
        assert orchestrator.limiter.remaining().per_minute == 59

    def test_unexpected_persistence_error_still_returns_result(self, orchestrator, monkeypatch):
        def broken_upsert(*args, **kwargs):
            raise RuntimeError("driver crashed")

        monkeypatch.setattr(orchestrator.deduplicator, "upsert", broken_upsert)
        assert isinstance(orchestrator.handle("A1 vs B1"), ComparisonResult)

    def test_unserializable_history_does_not_block_conversation(self, orchestrator, session_factory):
        history = [{"role": "user", "content": "x", "at": datetime(2024, 1, 1)}]
        result = orchestrator.handle("A1 vs B1", history, session_id="abc")

        assert isinstance(result, ComparisonResult)
        assert stored(session_factory, "a1-vs-b1") is None
        with session_factory() as db:
            convo = db.execute(select(Conversation)).scalar_one()
        assert json.loads(convo.messages)[0]["content"] == "A1 vs B1"


class TestScheduling:

    def test_persistence_dispatched_through_scheduler(self, orchestrator, session_factory):
        scheduled = []
        result = orchestrator.handle(
            "A1 vs B1", schedule=lambda fn, *args: scheduled.append((fn, args))
        )

        assert isinstance(result, ComparisonResult)
        assert len(scheduled) == 1
        assert stored(session_factory, "a1-vs-b1") is None

        fn, args = scheduled[0]
        fn(*args)
        assert stored(session_factory, "a1-vs-b1").view_count == 1

    def test_session_conversation_saved(self, orchestrator, session_factory):
        orchestrator.handle("A1 vs B1", session_id="abc")

        with session_factory() as db:
            convo = db.execute(select(Conversation)).scalar_one()
        messages = json.loads(convo.messages)
        assert convo.session_id == "abc"
        assert [m["role"] for m in messages] == ["user", "assistant"]
        assert messages[0]["content"] == "A1 vs B1"

    def test_cache_hit_records_current_query(self, orchestrator, session_factory):
        orchestrator.handle("A1 vs B1", session_id="abc")
        again = orchestrator.handle("a1  VS b1", session_id="abc")

        assert again.cached is True
        assert again.query == "a1  VS b1"
        with session_factory() as db:
            convo = db.execute(select(Conversation)).scalar_one()
        messages = json.loads(convo.messages)
        assert [m["content"] for m in messages if m["role"] == "user"] == ["A1 vs B1", "a1  VS b1"]


class TestChatFallback:

    @pytest.fixture
    def chat_orchestrator(self, deduplicator, clock):
        return Orchestrator(
            limiter=RateLimiter(60, 1500, clock=clock),
            cache=ResultCache(clock=clock),
            deduplicator=deduplicator,
            provider=StubProvider(response="Try comparing two laptops!"),
            chat_fallback=True,
        )

    def test_unsplittable_query_answered_as_chat(self, chat_orchestrator, session_factory):
        result = chat_orchestrator.handle("what should I buy")

        assert isinstance(result, ChatResult)
        assert result.response == "Try comparing two laptops!"
        assert chat_orchestrator.limiter.remaining().per_minute == 59
        with session_factory() as db:
            assert db.execute(select(func.count()).select_from(Comparison)).scalar_one() == 0

    def test_chat_answers_are_cached(self, chat_orchestrator):
        chat_orchestrator.handle("what should I buy")
        again = chat_orchestrator.handle("what should I buy")

        assert isinstance(again, ChatResult)
        assert again.cached is True
        assert chat_orchestrator.provider.calls == 1
