"""Shared FastAPI dependencies."""

from fastapi import HTTPException, Request, status

from compare_app.services.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    """The orchestrator built at startup for this worker."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting",
        )
    return orchestrator
