# arithduel/games/core/streak.py
from __future__ import annotations
from dataclasses import dataclass

from .difficulty import DifficultyProfile, StreakTier

_ZERO_TIER = StreakTier(0, "", 0, 0)


def advance(current_streak: int, was_exact: bool) -> int:
    """+1 on an exact hit, reset to 0 on anything else."""
    return current_streak + 1 if was_exact else 0


def tier_for(streak: int, profile: DifficultyProfile) -> StreakTier:
    """Highest tier whose threshold is <= streak; never below the zero tier."""
    best = _ZERO_TIER
    for tier in profile.streak_tiers:
        if tier.min_streak <= streak:
            best = tier
        else:
            break
    return best


@dataclass(frozen=True)
class StreakUpdate:
    old_streak: int
    new_streak: int
    tier: StreakTier
    bonus: int
    tier_up: bool
    broken: bool

    def to_payload(self) -> dict:
        return {
            "streak": self.new_streak,
            "tier": self.tier.name,
            "tier_intensity": self.tier.intensity,
            "streak_bonus": self.bonus,
            "tier_up": self.tier_up,
            "streak_broken": self.broken,
        }


def update(current_streak: int, was_exact: bool, profile: DifficultyProfile) -> StreakUpdate:
    new_streak = advance(current_streak, was_exact)
    old_tier = tier_for(current_streak, profile)
    new_tier = tier_for(new_streak, profile)
    return StreakUpdate(
        old_streak=current_streak,
        new_streak=new_streak,
        tier=new_tier,
        bonus=new_tier.bonus,
        tier_up=new_tier.intensity > old_tier.intensity,
        broken=(not was_exact) and current_streak >= 2,
    )
