"""
Users known to the ledger and their local calendar.
"""
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from progression.domain.errors import ProgressionValidationError
from progression.infrastructure.db.models import User
from progression.utils.calendar import Clock, SystemClock, local_day, resolve_zone


class UserCalendar:
    """
    Resolves "today" for a user in the user's own timezone.

    Users without a stored zone (or not registered at all) use the fallback
    zone from Settings.TIMEZONE.
    """

    def __init__(self, db: Session, clock: Clock | None = None, fallback_tz: str = "UTC"):
        self.db = db
        self.clock = clock or SystemClock()
        self.fallback_tz = fallback_tz

    def zone_for(self, user_id: str) -> ZoneInfo:
        user = self.db.query(User).filter(User.id == user_id).first()
        return resolve_zone(user.timezone if user else None, self.fallback_tz)

    def now(self) -> datetime:
        return self.clock.now()

    def today(self, user_id: str) -> date:
        return local_day(self.clock.now(), self.zone_for(user_id))


class SetUserTimezoneUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, user_id: str, timezone_name: str | None) -> User:
        if timezone_name:
            try:
                ZoneInfo(timezone_name)
            except (KeyError, ValueError):
                raise ProgressionValidationError(f"Unknown timezone: {timezone_name}")

        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            user = User(id=user_id)
            self.db.add(user)
        user.timezone = timezone_name or None
        self.db.commit()
        return user
