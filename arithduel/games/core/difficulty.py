# arithduel/games/core/difficulty.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

# ============================================================
# Profile building blocks
# ============================================================

@dataclass(frozen=True)
class IntRange:
    min: int
    max: int

    def clamp(self, value: int) -> int:
        return max(self.min, min(self.max, value))

    def contains(self, value: int) -> bool:
        return self.min <= value <= self.max

    def distance(self, value: int) -> int:
        """0 inside the range, else distance to the nearest boundary."""
        if value < self.min:
            return self.min - value
        if value > self.max:
            return value - self.max
        return 0


@dataclass(frozen=True)
class AccuracyThresholds:
    """
    difference == 0        -> exact
    0 < d <= close         -> close
    close < d < miss       -> far
    d >= miss              -> miss   (inclusive)
    """
    close: int
    miss: int


@dataclass(frozen=True)
class StreakTier:
    min_streak: int
    name: str
    bonus: int
    intensity: int


@dataclass(frozen=True)
class DifficultyProfile:
    key: str
    name: str
    card_range: IntRange
    card_count: int
    target_range: IntRange
    operators: Tuple[str, ...]
    allow_parentheses: bool
    accuracy: AccuracyThresholds
    player_hp: int
    variables: Tuple[str, ...] = ()
    variable_range: IntRange = IntRange(0, 0)
    variable_bonus_multiplier: float = 1.0
    streak_tiers: Tuple[StreakTier, ...] = field(default_factory=tuple)

    @property
    def variables_enabled(self) -> bool:
        return bool(self.variables)

    @property
    def max_cards(self) -> int:
        return self.card_count + len(self.variables)

    def to_payload(self) -> Dict[str, object]:
        return {
            "key": self.key,
            "name": self.name,
            "card_range": [self.card_range.min, self.card_range.max],
            "card_count": self.card_count,
            "target_range": [self.target_range.min, self.target_range.max],
            "operators": list(self.operators),
            "allow_parentheses": self.allow_parentheses,
            "variables": list(self.variables),
            "player_hp": self.player_hp,
        }


# ============================================================
# The three profiles
# ============================================================

EASY = DifficultyProfile(
    key="easy",
    name="Easy",
    card_range=IntRange(1, 9),
    card_count=4,
    target_range=IntRange(10, 30),
    operators=("+", "-"),
    allow_parentheses=False,
    accuracy=AccuracyThresholds(close=6, miss=15),
    player_hp=150,
    streak_tiers=(
        StreakTier(0, "", 0, 0),
        StreakTier(3, "Warming Up", 5, 1),
        StreakTier(4, "Heating Up", 10, 2),
        StreakTier(5, "On Fire", 15, 3),
        StreakTier(6, "Unstoppable", 25, 4),
    ),
)

MEDIUM = DifficultyProfile(
    key="medium",
    name="Medium",
    card_range=IntRange(2, 10),
    card_count=3,
    target_range=IntRange(15, 50),
    operators=("+", "-", "*", "/"),
    allow_parentheses=True,
    accuracy=AccuracyThresholds(close=4, miss=12),
    player_hp=200,
    variables=("x",),
    variable_range=IntRange(2, 9),
    variable_bonus_multiplier=1.10,
    streak_tiers=(
        StreakTier(0, "", 0, 0),
        StreakTier(2, "On Fire", 8, 1),
        StreakTier(3, "Unstoppable", 15, 2),
        StreakTier(4, "Dominating", 25, 3),
        StreakTier(5, "Legendary", 40, 4),
    ),
)

HARD = DifficultyProfile(
    key="hard",
    name="Hard",
    card_range=IntRange(2, 20),
    card_count=3,
    target_range=IntRange(80, 200),
    operators=("+", "-", "*", "/"),
    allow_parentheses=True,
    accuracy=AccuracyThresholds(close=2, miss=8),
    player_hp=250,
    variables=("x", "y"),
    variable_range=IntRange(2, 9),
    variable_bonus_multiplier=1.10,
    streak_tiers=(
        StreakTier(0, "", 0, 0),
        StreakTier(2, "Brutal", 15, 1),
        StreakTier(3, "Sadistic", 30, 2),
        StreakTier(4, "Godlike", 50, 3),
        StreakTier(5, "Human Calculator", 80, 4),
    ),
)

PROFILES: Dict[str, DifficultyProfile] = {p.key: p for p in (EASY, MEDIUM, HARD)}

_ALIASES = {
    "0": "easy", "low": "easy", "easy": "easy",
    "1": "medium", "mid": "medium", "medium": "medium",
    "2": "hard", "high": "hard", "hard": "hard",
}


def normalize_level(level: Optional[str], default: str = "medium") -> str:
    """Normalize UI level strings; unknown values fall back to `default`."""
    if level is None:
        return default
    return _ALIASES.get(str(level).strip().lower(), default)


def get_profile(level: Optional[str], default: str = "medium") -> DifficultyProfile:
    return PROFILES[normalize_level(level, default)]
