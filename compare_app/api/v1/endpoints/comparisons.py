"""Stored comparison lookup endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compare_app.core.config import get_settings
from compare_app.core.logging import logger
from compare_app.db.session import get_db
from compare_app.schemas.comparison import (
    ComparisonDetail,
    ComparisonSummary,
    RecentComparisonsResponse,
)
from compare_app.services.deduplicator import to_record
from compare_app.services.store import ComparisonStore

router = APIRouter()
settings = get_settings()


@router.get("/recent", response_model=RecentComparisonsResponse)
def recent_comparisons(
    limit: int = Query(settings.recent_limit, ge=1, le=100, description="Maximum number of results"),
    db: Session = Depends(get_db),
):
    """Most recently viewed comparisons, newest first."""
    rows = ComparisonStore(db).recent(limit)
    return RecentComparisonsResponse(
        comparisons=[ComparisonSummary.model_validate(to_record(row)) for row in rows]
    )


@router.get("/{key}", response_model=ComparisonDetail)
def get_comparison(key: str, db: Session = Depends(get_db)):
    """Fetch a stored comparison and count the view."""
    store = ComparisonStore(db)
    try:
        if not store.increment_view_count(key):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Comparison '{key}' not found",
            )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error recording view for {key}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error loading comparison",
        )

    row = store.get_with_products(key)
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Comparison '{key}' not found",
        )
    return ComparisonDetail.model_validate(to_record(row))
