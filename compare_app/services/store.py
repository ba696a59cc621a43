"""Persistent store for products, comparisons and conversations."""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, selectinload

from compare_app.db.models import Comparison, Conversation, Product


class ComparisonStore:
    """
    Key-addressed access to comparison rows.

    Uniqueness of ``Comparison.key`` and ``Product.slug`` is enforced by the
    database; creation goes through INSERT ... ON CONFLICT so two writers racing
    on the same key never produce two rows. Methods do not commit; the caller
    owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, model):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")

    def find_by_key(self, key: str) -> Optional[Comparison]:
        return self.db.execute(
            select(Comparison).where(Comparison.key == key)
        ).scalar_one_or_none()

    def create_record(self, data: Dict[str, Any]) -> Optional[Comparison]:
        """
        Insert a comparison row unless one with the same key exists.

        Returns the new row, or None if another writer created the key first.
        """
        stmt = self._insert(Comparison.__table__).values(**data)
        stmt = stmt.on_conflict_do_nothing(index_elements=["key"])
        result = self.db.connection().execute(stmt)
        if result.rowcount == 0:
            return None
        return self.find_by_key(data["key"])

    def increment_view_count(self, key: str) -> bool:
        """Atomically bump view_count and last_viewed_at. False if the key is unknown."""
        table = Comparison.__table__
        stmt = (
            update(table)
            .where(table.c.key == key)
            .values(view_count=table.c.view_count + 1, last_viewed_at=datetime.utcnow())
        )
        result = self.db.connection().execute(stmt)
        return result.rowcount > 0

    def upsert_product_by_slug(self, slug: str, data: Dict[str, Any]) -> Product:
        """Create the product, or refresh its display name if the slug already exists."""
        now = datetime.utcnow()
        stmt = self._insert(Product.__table__).values(slug=slug, created_at=now, updated_at=now, **data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["slug"],
            set_={"name": stmt.excluded.name, "updated_at": stmt.excluded.updated_at},
        )
        self.db.connection().execute(stmt)
        return self.db.execute(select(Product).where(Product.slug == slug)).scalar_one()

    def get_with_products(self, key: str) -> Optional[Comparison]:
        return self.db.execute(
            select(Comparison)
            .options(selectinload(Comparison.product1), selectinload(Comparison.product2))
            .where(Comparison.key == key)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def recent(self, limit: int = 10) -> List[Comparison]:
        """Most recently viewed comparisons, newest first."""
        return list(
            self.db.execute(
                select(Comparison)
                .options(selectinload(Comparison.product1), selectinload(Comparison.product2))
                .order_by(Comparison.last_viewed_at.desc(), Comparison.created_at.desc())
                .limit(limit)
            ).scalars()
        )

    def append_conversation(self, session_id: str, messages: List[Dict[str, str]]) -> Conversation:
        """Append messages to the session transcript, creating it on first use."""
        stmt = self._insert(Conversation.__table__).values(session_id=session_id, messages="[]")
        self.db.connection().execute(stmt.on_conflict_do_nothing(index_elements=["session_id"]))

        conversation = self.db.execute(
            select(Conversation)
            .where(Conversation.session_id == session_id)
            .with_for_update()
        ).scalar_one()
        try:
            existing = json.loads(conversation.messages or "[]")
        except ValueError:
            existing = []
        conversation.messages = json.dumps(existing + list(messages))
        self.db.flush()
        return conversation
