"""Comparison query endpoint."""

import time
import uuid
from typing import Optional, Union

from fastapi import APIRouter, BackgroundTasks, Depends, Header, status
from fastapi.responses import JSONResponse

from compare_app.api.deps import get_orchestrator
from compare_app.core.logging import logger
from compare_app.schemas.comparison import (
    ChatResponse,
    CompareRequest,
    CompareResponse,
    ErrorResponse,
    Limits,
)
from compare_app.schemas.outcomes import (
    ChatResult,
    ComparisonResult,
    NoProductsFound,
    RateLimited,
)
from compare_app.services.orchestrator import Orchestrator

router = APIRouter()


@router.post(
    "/compare",
    response_model=Union[CompareResponse, ChatResponse],
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def compare(
    req: CompareRequest,
    background_tasks: BackgroundTasks,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    x_session_id: Optional[str] = Header(None),
):
    """
    Compare the two products named in a free-text query.

    Identical queries within the cache TTL are answered from memory without
    touching the provider quota. Persistence of the comparison record happens
    after the response is sent.
    """
    start_time = time.time()
    session_id = x_session_id or str(uuid.uuid4())
    history = [m.model_dump() for m in req.conversation_history]

    outcome = orchestrator.handle(
        req.query,
        history,
        schedule=background_tasks.add_task,
        session_id=session_id,
    )
    limits = Limits(**orchestrator.limiter.remaining().as_dict())

    if isinstance(outcome, ComparisonResult):
        logger.info(
            f"Comparison {outcome.key} served in {time.time() - start_time:.3f}s",
            extra={"comparison_key": outcome.key, "session_id": session_id, "cached": outcome.cached},
        )
        return CompareResponse(
            query=outcome.query,
            product1=outcome.product1,
            product2=outcome.product2,
            key=outcome.key,
            comparison=outcome.comparison,
            cached=outcome.cached,
            limits=limits,
            session_id=session_id,
        )

    if isinstance(outcome, ChatResult):
        return ChatResponse(
            query=outcome.query,
            response=outcome.response,
            cached=outcome.cached,
            limits=limits,
            session_id=session_id,
        )

    if isinstance(outcome, RateLimited):
        body = ErrorResponse(
            error=outcome.message, limits=Limits(**outcome.remaining.as_dict())
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=body.model_dump(),
        )

    if isinstance(outcome, NoProductsFound):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error=outcome.message).model_dump(exclude_none=True),
        )

    # ProviderFailure
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error=outcome.message).model_dump(exclude_none=True),
    )


@router.get("/limits", response_model=Limits)
def limits(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Remaining outbound provider quota for this worker."""
    return Limits(**orchestrator.limiter.remaining().as_dict())
