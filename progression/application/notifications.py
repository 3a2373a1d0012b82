"""
Outbound progression events for celebratory UI (level up, new achievement).

Fire-and-forget: listeners run after the change is committed, and a failing
listener is logged and skipped. Nothing here is persisted.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Union

from progression.domain.achievement import Achievement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LevelUp:
    user_id: str
    old_level: int
    new_level: int


@dataclass(frozen=True)
class AchievementUnlocked:
    user_id: str
    achievement: Achievement


ProgressionEvent = Union[LevelUp, AchievementUnlocked]
Listener = Callable[[ProgressionEvent], None]


class ProgressionNotifier:
    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: ProgressionEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Progression listener failed for %s", type(event).__name__)
