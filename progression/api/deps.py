"""
FastAPI dependencies (DB session, authentication, progression facade)
"""
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from progression.application.notifications import ProgressionNotifier
from progression.application.progression import ProgressionFacade
from progression.infrastructure.db.session import get_db as _get_db
from progression.utils.calendar import Clock, SystemClock


# Re-export get_db for convenience
get_db = _get_db

# Process-wide notifier: UI bridges subscribe once at startup
notifier = ProgressionNotifier()


def get_current_user_id(request: Request) -> str:
    """
    Current user id from the session (set by the identity provider login flow)

    Raises:
        HTTPException(401): not logged in

    Usage:
        @router.get("/")
        def get_progress(user_id: str = Depends(get_current_user_id)):
            ...
    """
    user_id = request.session.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return str(user_id)


def get_clock() -> Clock:
    return SystemClock()


def get_notifier() -> ProgressionNotifier:
    return notifier


def get_facade(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    events: ProgressionNotifier = Depends(get_notifier),
) -> ProgressionFacade:
    return ProgressionFacade(db, clock=clock, notifier=events)
