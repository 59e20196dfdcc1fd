# arithduel/games/core/scoring.py
"""
Damage model.

Damage rewards how a result was reached, not how big it is:

    raw   = base + card bonus + operator variety + exact division + parentheses
    raw  += variable uplift (percentage of raw, profile configured)
    raw  += streak bonus (exact hits only)
    final = floor(raw * accuracy multiplier)

A miss short-circuits to zero before any bonus is accumulated.
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union
import math
import re

from .difficulty import DifficultyProfile
from .evaluator import check_parentheses, normalize_expression, try_evaluate
from .solver import OPERATORS

BASE_DAMAGE = 20
CARD_BONUSES = {0: 0, 1: 0, 2: 0, 3: 10, 4: 25, 5: 40}
OPERATOR_BONUS = 5
DIVISION_BONUS = 10
PAREN_BONUS_PER_PAIR = 5

EXACT, CLOSE, FAR, MISS = "exact", "close", "far", "miss"
ACCURACY_MULTIPLIERS = {EXACT: 1.0, CLOSE: 0.75, FAR: 0.5, MISS: 0.0}

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_DIVISION_RE = re.compile(r"(\d+)\s*/\s*(\d+)")

Difference = Union[int, float, Fraction]


def card_bonus_for(cards_used: int) -> int:
    top = max(CARD_BONUSES)
    return CARD_BONUSES[max(0, min(cards_used, top))]


def classify_accuracy(difference: Optional[Difference], profile: DifficultyProfile) -> str:
    """None (no valid result) is always a miss; the miss threshold is inclusive."""
    if difference is None:
        return MISS
    if difference == 0:
        return EXACT
    if difference >= profile.accuracy.miss:
        return MISS
    if difference <= profile.accuracy.close:
        return CLOSE
    return FAR


@dataclass
class DamageResult:
    damage: int
    accuracy: str
    accuracy_multiplier: float
    raw_damage: int = 0
    base_damage: int = BASE_DAMAGE
    card_bonus: int = 0
    operator_bonus: int = 0
    division_bonus: int = 0
    parentheses_bonus: int = 0
    variable_bonus: int = 0
    streak_bonus: int = 0
    is_master_play: bool = False
    breakdown: List[str] = field(default_factory=list)

    @property
    def miss(self) -> bool:
        return self.accuracy == MISS

    def to_payload(self) -> dict:
        return {
            "damage": self.damage,
            "accuracy": self.accuracy,
            "accuracy_multiplier": self.accuracy_multiplier,
            "raw_damage": self.raw_damage,
            "card_bonus": self.card_bonus,
            "operator_bonus": self.operator_bonus,
            "division_bonus": self.division_bonus,
            "parentheses_bonus": self.parentheses_bonus,
            "variable_bonus": self.variable_bonus,
            "streak_bonus": self.streak_bonus,
            "is_master_play": self.is_master_play,
            "miss": self.miss,
            "breakdown": list(self.breakdown),
        }


def resolve_damage(cards_used: int,
                   operators_used: Iterable[str],
                   difference: Optional[Difference],
                   profile: DifficultyProfile,
                   has_exact_division: bool = False,
                   effective_paren_pairs: int = 0,
                   variables_used: Iterable[str] = (),
                   streak_bonus: int = 0) -> DamageResult:
    accuracy = classify_accuracy(difference, profile)
    if accuracy == MISS:
        shown = "n/a" if difference is None else f"±{_fmt(difference)}"
        return DamageResult(damage=0, accuracy=MISS, accuracy_multiplier=0.0,
                            breakdown=[f"MISS ({shown})"])

    unique_ops = {op for op in operators_used if op in OPERATORS}
    card_bonus = card_bonus_for(cards_used)
    operator_bonus = len(unique_ops) * OPERATOR_BONUS
    division_bonus = DIVISION_BONUS if (has_exact_division and "/" in unique_ops) else 0
    paren_bonus = 0
    if profile.allow_parentheses:
        paren_bonus = max(0, int(effective_paren_pairs)) * PAREN_BONUS_PER_PAIR

    raw = BASE_DAMAGE + card_bonus + operator_bonus + division_bonus + paren_bonus

    variable_bonus = 0
    used_vars = [v for v in variables_used if v in profile.variables]
    if used_vars and profile.variables_enabled:
        pct = round((profile.variable_bonus_multiplier - 1.0) * 100)
        variable_bonus = raw * pct // 100
    raw += variable_bonus

    applied_streak = streak_bonus if accuracy == EXACT else 0
    raw += applied_streak

    multiplier = ACCURACY_MULTIPLIERS[accuracy]
    damage = math.floor(raw * multiplier)
    master = (accuracy == EXACT and cards_used >= profile.max_cards and len(unique_ops) >= 3)

    breakdown = [EXACT.upper() if accuracy == EXACT
                 else f"{accuracy} (±{_fmt(difference)}): {int(multiplier * 100)}%"]
    if card_bonus:
        breakdown.append(f"+{card_bonus} ({cards_used} cards)")
    if operator_bonus:
        breakdown.append(f"+{operator_bonus} ops ({','.join(sorted(unique_ops))})")
    if division_bonus:
        breakdown.append(f"+{division_bonus} exact division")
    if paren_bonus:
        breakdown.append(f"+{paren_bonus} parentheses")
    if variable_bonus:
        breakdown.append(f"+{variable_bonus} variables ({','.join(used_vars)})")
    if applied_streak:
        breakdown.append(f"+{applied_streak} streak")
    if master:
        breakdown.append("MASTER PLAY")

    return DamageResult(
        damage=damage,
        accuracy=accuracy,
        accuracy_multiplier=multiplier,
        raw_damage=raw,
        card_bonus=card_bonus,
        operator_bonus=operator_bonus,
        division_bonus=division_bonus,
        parentheses_bonus=paren_bonus,
        variable_bonus=variable_bonus,
        streak_bonus=applied_streak,
        is_master_play=master,
        breakdown=breakdown,
    )


def _fmt(d: Difference) -> str:
    if isinstance(d, Fraction) and d.denominator != 1:
        return f"{float(d):g}"
    return str(int(d)) if float(d).is_integer() else f"{float(d):g}"


# ============================================================
# Expression inspection (builds resolve_damage inputs)
# ============================================================

def operators_in(expr: str) -> Tuple[str, ...]:
    s = normalize_expression(expr)
    return tuple(op for op in OPERATORS if op in s)


def variables_in(expr: str, symbols: Iterable[str]) -> Tuple[str, ...]:
    s = normalize_expression(expr)
    return tuple(sym for sym in symbols if sym in s)


def count_cards_used(expr: str, cards: Sequence[int], symbols: Iterable[str] = (),
                     cap: Optional[int] = None) -> int:
    """Literals that consume a card from the multiset, plus distinct variables referenced."""
    s = normalize_expression(expr)
    remaining = Counter(int(c) for c in cards)
    count = 0
    for tok in _NUMBER_RE.findall(s):
        if "." in tok:
            continue
        n = int(tok)
        if remaining[n] > 0:
            remaining[n] -= 1
            count += 1
    count += len(variables_in(s, symbols))
    return min(count, cap) if cap is not None else count


def has_exact_division(expr: str) -> bool:
    s = normalize_expression(expr)
    if "/" not in s:
        return False
    for m in _DIVISION_RE.finditer(s):
        dividend, divisor = int(m.group(1)), int(m.group(2))
        if divisor != 0 and dividend % divisor == 0:
            return True
    return False


def effective_parentheses(expr: str, variable_values: Optional[Mapping[str, int]] = None) -> int:
    """Number of paren pairs when removing them changes the value, else 0."""
    s = normalize_expression(expr)
    check = check_parentheses(s)
    if not check["valid"] or not check["open_count"]:
        return 0
    with_parens = try_evaluate(s, variable_values)
    without = try_evaluate(s.replace("(", "").replace(")", ""), variable_values)
    if with_parens is None or without is None:
        return 0
    return int(check["open_count"]) if with_parens != without else 0


@dataclass(frozen=True)
class ExpressionAnalysis:
    cards_used: int
    operators_used: Tuple[str, ...]
    has_exact_division: bool
    effective_paren_pairs: int
    variables_used: Tuple[str, ...]


def analyze_expression(expr: str, cards: Sequence[int],
                       variable_values: Optional[Mapping[str, int]],
                       profile: DifficultyProfile) -> ExpressionAnalysis:
    symbols = tuple((variable_values or {}).keys())
    return ExpressionAnalysis(
        cards_used=count_cards_used(expr, cards, symbols, cap=profile.max_cards),
        operators_used=operators_in(expr),
        has_exact_division=has_exact_division(expr),
        effective_paren_pairs=effective_parentheses(expr, variable_values),
        variables_used=variables_in(expr, symbols),
    )
