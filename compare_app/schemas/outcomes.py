"""Typed results returned by the arbitration orchestrator."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Union

from compare_app.services.rate_limiter import RemainingQuota


@dataclass(frozen=True)
class ComparisonRecord:
    """Detached snapshot of a stored comparison row."""

    key: str
    title: str
    product1_slug: str
    product2_slug: str
    view_count: int
    created_at: datetime
    last_viewed_at: datetime
    generated_content: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ComparisonResult:
    query: str
    product1: str
    product2: str
    key: str
    comparison: Dict[str, Any]
    cached: bool = False


@dataclass(frozen=True)
class ChatResult:
    """Free-form answer for a query that did not name two products."""

    query: str
    response: str
    cached: bool = False


@dataclass(frozen=True)
class RateLimited:
    remaining: RemainingQuota
    message: str = "Rate limit exceeded. Please try again in a few moments."


@dataclass(frozen=True)
class NoProductsFound:
    query: str
    message: str = "Please specify two products to compare, e.g. 'iPhone 15 vs Pixel 8'."


@dataclass(frozen=True)
class ProviderFailure:
    reason: str
    message: str = "Failed to generate a comparison. Please try again."


Outcome = Union[ComparisonResult, ChatResult, RateLimited, NoProductsFound, ProviderFailure]
