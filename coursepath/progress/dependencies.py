"""FastAPI dependencies for learner progression.

Provides dependency injection for:
- Watch progress tracker
- Progress query service
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import ProgressService
from .tracker import WatchProgressTracker


async def get_progress_tracker(request: Request) -> WatchProgressTracker:
    """Get watch progress tracker from app state."""
    app_state = request.app.state
    if not getattr(app_state, "progress_tracker", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress tracking not available",
        )
    return app_state.progress_tracker


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress query service from app state."""
    app_state = request.app.state
    if not getattr(app_state, "progress_service", None):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return app_state.progress_service


# Type aliases for dependency injection
ProgressTrackerDep = Annotated[WatchProgressTracker, Depends(get_progress_tracker)]
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]
