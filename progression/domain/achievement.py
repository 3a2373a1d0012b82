"""
Achievement catalog with declarative unlock predicates.

Every predicate has the form  metric(stats, key) >= threshold  so the evaluator
needs no per-achievement code. METRIC_MANUAL achievements never unlock from
stats; they are granted explicitly (hidden easter eggs).
"""
from dataclasses import dataclass, field
from typing import Mapping

METRIC_TOTAL_XP = "total_xp"
METRIC_LEVEL = "level"
METRIC_STREAK = "streak"
METRIC_BEST_STREAK = "best_streak"
METRIC_SOURCE_COUNT = "source_count"      # key = source
METRIC_DISTINCT_REFS = "distinct_refs"    # key = source
METRIC_SUBJECT_XP = "subject_xp"          # key = subject, or None for the best subject
METRIC_REFERRALS = "referrals"
METRIC_MANUAL = "manual"

METRICS = frozenset({
    METRIC_TOTAL_XP, METRIC_LEVEL, METRIC_STREAK, METRIC_BEST_STREAK,
    METRIC_SOURCE_COUNT, METRIC_DISTINCT_REFS, METRIC_SUBJECT_XP,
    METRIC_REFERRALS, METRIC_MANUAL,
})


@dataclass(frozen=True)
class AggregateStats:
    """Aggregates the predicates are evaluated against (all derived, never cached)."""
    total_xp: int = 0
    level: int = 1
    streak_count: int = 0
    best_streak: int = 0
    completed_referrals: int = 0
    source_counts: Mapping[str, int] = field(default_factory=dict)
    distinct_refs: Mapping[str, int] = field(default_factory=dict)
    subject_xp: Mapping[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    description: str
    metric: str
    threshold: int = 0
    key: str | None = None
    xp_reward: int = 0

    def __post_init__(self):
        if self.metric not in METRICS:
            raise ValueError(f"Unknown achievement metric: {self.metric}")

    @property
    def is_manual(self) -> bool:
        return self.metric == METRIC_MANUAL

    def metric_value(self, stats: AggregateStats) -> int:
        if self.metric == METRIC_TOTAL_XP:
            return stats.total_xp
        if self.metric == METRIC_LEVEL:
            return stats.level
        if self.metric == METRIC_STREAK:
            return stats.streak_count
        if self.metric == METRIC_BEST_STREAK:
            return stats.best_streak
        if self.metric == METRIC_REFERRALS:
            return stats.completed_referrals
        if self.metric == METRIC_SOURCE_COUNT:
            return stats.source_counts.get(self.key, 0)
        if self.metric == METRIC_DISTINCT_REFS:
            return stats.distinct_refs.get(self.key, 0)
        if self.metric == METRIC_SUBJECT_XP:
            if self.key is None:
                return max(stats.subject_xp.values(), default=0)
            return stats.subject_xp.get(self.key, 0)
        return 0

    def is_satisfied(self, stats: AggregateStats) -> bool:
        if self.is_manual:
            return False
        return self.metric_value(stats) >= self.threshold


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_lesson", "First Steps", "Complete your first lesson",
                METRIC_SOURCE_COUNT, 1, key="lesson_completion", xp_reward=10),
    Achievement("century", "Century", "Earn 100 XP", METRIC_TOTAL_XP, 100),
    Achievement("level_5", "Rising Star", "Reach level 5", METRIC_LEVEL, 5, xp_reward=25),
    Achievement("level_10", "Jungle Veteran", "Reach level 10", METRIC_LEVEL, 10, xp_reward=50),
    Achievement("streak_3", "On a Roll", "Keep a 3-day streak", METRIC_STREAK, 3),
    Achievement("streak_7", "Week Warrior", "Keep a 7-day streak", METRIC_STREAK, 7, xp_reward=25),
    Achievement("streak_30", "Unstoppable", "Reach a 30-day streak",
                METRIC_BEST_STREAK, 30, xp_reward=100),
    Achievement("game_explorer", "Game Explorer", "Play 3 different games",
                METRIC_DISTINCT_REFS, 3, key="game_completion"),
    Achievement("chatterbox", "Chatterbox", "Finish 10 tutor chats",
                METRIC_SOURCE_COUNT, 10, key="chat_completion"),
    Achievement("challenge_champion", "Challenge Champion", "Complete 5 challenges",
                METRIC_SOURCE_COUNT, 5, key="challenge_completion", xp_reward=25),
    Achievement("tutor_master", "Tutor Master", "Earn 100 XP in a single subject",
                METRIC_SUBJECT_XP, 100),
    Achievement("quote_sharer", "Wordsmith", "Share 5 quotes",
                METRIC_SOURCE_COUNT, 5, key="quote_share"),
    Achievement("first_referral", "Squad Builder", "Refer your first friend", METRIC_REFERRALS, 1),
    Achievement("hidden_vine", "Hidden Vine", "Found a secret in the jungle", METRIC_MANUAL,
                xp_reward=15),
)


def find_achievement(
    achievement_id: str,
    catalog: tuple[Achievement, ...] = ACHIEVEMENTS,
) -> Achievement | None:
    for achievement in catalog:
        if achievement.id == achievement_id:
            return achievement
    return None
