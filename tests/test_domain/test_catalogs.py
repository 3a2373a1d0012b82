"""
Tests for the achievement and reward tier catalogs.
"""
import pytest

from progression.domain.achievement import (
    ACHIEVEMENTS, Achievement, AggregateStats, find_achievement,
    METRIC_MANUAL, METRIC_SUBJECT_XP, METRIC_TOTAL_XP,
)
from progression.domain.reward_tier import REWARD_TIERS, RewardTier, KIND_REFERRAL, find_tier
from progression.domain.rules import ProgressionRules


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------

def test_catalog_ids_unique():
    ids = [a.id for a in ACHIEVEMENTS]
    assert len(ids) == len(set(ids))


def test_threshold_predicate():
    century = find_achievement("century")
    assert not century.is_satisfied(AggregateStats(total_xp=99))
    assert century.is_satisfied(AggregateStats(total_xp=100))


def test_source_count_predicate():
    chatterbox = find_achievement("chatterbox")
    assert not chatterbox.is_satisfied(AggregateStats(source_counts={"chat_completion": 9}))
    assert chatterbox.is_satisfied(AggregateStats(source_counts={"chat_completion": 10}))


def test_distinct_refs_predicate():
    explorer = find_achievement("game_explorer")
    assert explorer.is_satisfied(AggregateStats(distinct_refs={"game_completion": 3}))
    assert not explorer.is_satisfied(AggregateStats(source_counts={"game_completion": 3}))


def test_subject_xp_without_key_uses_best_subject():
    master = find_achievement("tutor_master")
    assert master.is_satisfied(AggregateStats(subject_xp={"math": 40, "history": 120}))
    assert not master.is_satisfied(AggregateStats())


def test_subject_xp_with_key():
    a = Achievement("math_ace", "Math Ace", "", METRIC_SUBJECT_XP, 50, key="math")
    assert a.is_satisfied(AggregateStats(subject_xp={"math": 50}))
    assert not a.is_satisfied(AggregateStats(subject_xp={"history": 500}))


def test_manual_never_auto_satisfied():
    hidden = Achievement("egg", "Egg", "", METRIC_MANUAL)
    assert hidden.is_manual
    assert not hidden.is_satisfied(AggregateStats(total_xp=10_000))


def test_unknown_metric_rejected():
    with pytest.raises(ValueError):
        Achievement("x", "X", "", "karma", 1)


def test_find_unknown_achievement():
    assert find_achievement("nope") is None
    assert find_achievement("century", (Achievement("c", "C", "", METRIC_TOTAL_XP, 1),)) is None


# ---------------------------------------------------------------------------
# Reward tiers
# ---------------------------------------------------------------------------

def test_default_referral_tiers():
    assert find_tier("referral_silver").threshold == 5
    assert find_tier("referral_gold").bonus_coins == 50
    assert find_tier("referral_diamond").threshold == 25


def test_tier_ids_unique():
    ids = [t.id for t in REWARD_TIERS]
    assert len(ids) == len(set(ids))


def test_invalid_tier_kind():
    with pytest.raises(ValueError):
        RewardTier("x", "X", "loyalty", bonus_coins=1)


def test_negative_bonus_rejected():
    with pytest.raises(ValueError):
        RewardTier("x", "X", KIND_REFERRAL, bonus_coins=-1)


def test_tier_rank_follows_multiplier():
    rules = ProgressionRules()
    assert rules.tier_rank("free") == 0
    assert rules.tier_rank("single_tutor") < rules.tier_rank("all_access") < rules.tier_rank("elite")
    assert rules.tier_rank("platinum") == 0
    assert rules.tier_rank(None) == 0
