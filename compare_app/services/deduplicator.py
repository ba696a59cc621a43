"""Idempotent find-or-create of comparison records."""

import json
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compare_app.core.logging import logger
from compare_app.db.models import Comparison
from compare_app.schemas.outcomes import ComparisonRecord
from compare_app.services.normalizer import KEY_SEPARATOR, normalize
from compare_app.services.store import ComparisonStore

DEFAULT_CATEGORY = "Electronics"


class PersistenceFailure(Exception):
    """A comparison could not be written to the store."""


def _brand_guess(name: str) -> Optional[str]:
    parts = name.split()
    return parts[0] if parts else None


def _load_content(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def to_record(row: Comparison) -> ComparisonRecord:
    """Snapshot a loaded row so it can leave the session."""
    return ComparisonRecord(
        key=row.key,
        title=row.title,
        product1_slug=row.product1.slug,
        product2_slug=row.product2.slug,
        view_count=row.view_count,
        created_at=row.created_at,
        last_viewed_at=row.last_viewed_at,
        generated_content=_load_content(row.generated_content),
    )


class ComparisonDeduplicator:
    """
    Resolves a pair of product names to exactly one durable comparison row.

    The first request for a key creates the two product rows and the
    comparison with view_count=1. Every later request, including the loser of
    a concurrent create, goes through the store's atomic increment, so after
    N calls for the same pair there is one row with view_count == N.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def upsert(
        self,
        name1: str,
        name2: str,
        payload: Dict[str, Any],
        conversation: Optional[List[Dict[str, str]]] = None,
    ) -> ComparisonRecord:
        slug1 = normalize(name1)
        slug2 = normalize(name2)
        if not slug1 or not slug2:
            raise ValueError(f"Cannot build a comparison key from {name1!r} and {name2!r}")
        key = f"{slug1}{KEY_SEPARATOR}{slug2}"

        db = self.session_factory()
        try:
            store = ComparisonStore(db)
            if store.find_by_key(key) is None:
                created = self._create(store, key, name1, name2, slug1, slug2, payload, conversation)
                if not created:
                    logger.debug("Lost create race; counting as a view", extra={"comparison_key": key})
                    store.increment_view_count(key)
            else:
                store.increment_view_count(key)
            db.commit()

            row = store.get_with_products(key)
            return to_record(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceFailure(f"Failed to upsert comparison {key}: {e}") from e
        finally:
            db.close()

    def _create(
        self,
        store: ComparisonStore,
        key: str,
        name1: str,
        name2: str,
        slug1: str,
        slug2: str,
        payload: Dict[str, Any],
        conversation: Optional[List[Dict[str, str]]],
    ) -> bool:
        # Lock product rows in slug order so "A vs B" and "B vs A" cannot deadlock
        products = {}
        for slug, name in sorted({slug1: name1, slug2: name2}.items()):
            products[slug] = store.upsert_product_by_slug(
                slug,
                {
                    "name": name.strip(),
                    "brand": _brand_guess(name),
                    "category": DEFAULT_CATEGORY,
                    "description": f"{name.strip()} - Product details coming soon",
                },
            )

        created = store.create_record(
            {
                "key": key,
                "title": f"{name1.strip()} vs {name2.strip()}",
                "product1_id": products[slug1].id,
                "product2_id": products[slug2].id,
                "view_count": 1,
                "generated_content": json.dumps(payload),
                "conversation": json.dumps(conversation or []),
            }
        )
        if created is not None:
            logger.info("Created comparison", extra={"comparison_key": key})
        return created is not None

    def save_conversation(self, session_id: str, messages: List[Dict[str, str]]) -> None:
        db = self.session_factory()
        try:
            ComparisonStore(db).append_conversation(session_id, messages)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceFailure(f"Failed to save conversation {session_id}: {e}") from e
        finally:
            db.close()
