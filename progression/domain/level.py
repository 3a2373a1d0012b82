"""
Level curve - fixed step.

Every XP_PER_LEVEL (default 100) XP is one level:
  level          = total_xp // 100 + 1
  level_progress = (total_xp % 100) / 100

  0 XP   → level 1, progress 0.0
  95 XP  → level 1, progress 0.95
  105 XP → level 2, progress 0.05

Level is never stored independently of the ledger total; it is recomputed on
every read.
"""
from dataclasses import dataclass

from progression.domain.rules import DEFAULT_XP_PER_LEVEL


@dataclass(frozen=True)
class LevelInfo:
    level: int
    level_progress: float  # 0.0 <= progress < 1.0
    xp_into_level: int
    xp_to_next_level: int


def level_of(total_xp: int, xp_per_level: int = DEFAULT_XP_PER_LEVEL) -> LevelInfo:
    """
    Pure function: derive level and progress from cumulative XP.

    Raises:
        ValueError: if total_xp is negative or xp_per_level is not positive
    """
    if total_xp < 0:
        raise ValueError("total_xp must be non-negative")
    if xp_per_level <= 0:
        raise ValueError("xp_per_level must be positive")

    level = total_xp // xp_per_level + 1
    into = total_xp % xp_per_level
    return LevelInfo(
        level=level,
        level_progress=into / xp_per_level,
        xp_into_level=into,
        xp_to_next_level=xp_per_level - into,
    )
