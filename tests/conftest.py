"""
Pytest configuration and fixtures.
"""
import json
import os
import tempfile

import pytest

# Settings are cached on first import, so the environment must be set before compare_app loads
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.mkdtemp()}/compare-test.db")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("ENVIRONMENT", "test")

from sqlalchemy.orm import sessionmaker  # noqa: E402

from compare_app.db.session import build_engine, init_db  # noqa: E402
from compare_app.services.deduplicator import ComparisonDeduplicator  # noqa: E402
from compare_app.services.orchestrator import Orchestrator  # noqa: E402
from compare_app.services.rate_limiter import RateLimiter  # noqa: E402
from compare_app.services.result_cache import ResultCache  # noqa: E402

VALID_COMPARISON = {
    "product1": {
        "name": "MacBook Air M3",
        "price": "$1,099",
        "rating": 4.7,
        "pros": ["Battery life", "Fanless", "Display"],
        "cons": ["Two ports", "Price", "8GB base"],
        "specs": {"Processor": "Apple M3"},
    },
    "product2": {
        "name": "Dell XPS 13",
        "price": "$999",
        "rating": 4.4,
        "pros": ["Compact", "OLED option", "Build"],
        "cons": ["Battery", "Webcam", "Ports"],
        "specs": {"Processor": "Intel Core Ultra 7"},
    },
    "verdict": "The MacBook Air wins on battery life.",
    "recommendation": "Pick the XPS if you need Windows.",
}


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """Records prompts and replays a canned response, or raises."""

    def __init__(self, response=None, error=None):
        self.response = response if response is not None else (
            "Here you go:\n```json\n" + json.dumps(VALID_COMPARISON) + "\n```"
        )
        self.error = error
        self.prompts = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.response

    @property
    def calls(self) -> int:
        return len(self.prompts)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path}/compare.db")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def deduplicator(session_factory):
    return ComparisonDeduplicator(session_factory)


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def orchestrator(deduplicator, provider, clock):
    return Orchestrator(
        limiter=RateLimiter(60, 1500, clock=clock),
        cache=ResultCache(clock=clock),
        deduplicator=deduplicator,
        provider=provider,
        cache_ttl=600,
    )
