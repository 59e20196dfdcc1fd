# arithduel/games/core/solver.py
"""
Combinatorial search over a small multiset of integers.

Two questions are answered:
  * which non-negative integers are reachable by combining the atoms with
    the allowed operators (not every atom has to be used), and
  * one concrete expression that reaches a given target.

Division is only taken when it is exact, so every intermediate value stays
an integer. Input sizes are capped by the difficulty profiles (at most 5
atoms), which keeps the exhaustive search cheap.
"""
from __future__ import annotations
from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple
import logging
import random

from .difficulty import DifficultyProfile

logger = logging.getLogger(__name__)

OPERATORS: Tuple[str, ...] = ("+", "-", "*", "/")
EPSILON = 1e-4
# largest multiset any profile deals (3 cards + 2 variables)
MAX_ATOMS = 5

# precedence classes used when rendering
ATOM, MUL, ADD = 3, 2, 1


def _exact_div(a: int, b: int) -> Optional[int]:
    if b == 0 or a % b != 0:
        return None
    return a // b


_OPS = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _exact_div,
}


def _ops_key(operators: Iterable[str]) -> str:
    """Canonical, ordered operator string ('+-*/' subset); + and - are always on."""
    wanted = set(operators or ()) | {"+", "-"}
    return "".join(op for op in OPERATORS if op in wanted)


def _atoms_key(values: Iterable[int]) -> Tuple[int, ...]:
    return tuple(sorted(int(v) for v in values))


# ============================================================
# Reachability
# ============================================================

def compute_reachable_set(values: Sequence[int], operators: Iterable[str] = OPERATORS) -> Set[int]:
    """All non-negative integers reachable from `values` under `operators`."""
    if not values:
        return set()
    return set(_reachable(_atoms_key(values), _ops_key(operators)))


@lru_cache(maxsize=65536)
def _reachable(atoms: Tuple[int, ...], ops: str) -> FrozenSet[int]:
    out = {abs(a) for a in atoms}
    n = len(atoms)
    if n == 1:
        return frozenset(out)
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            a, b = atoms[i], atoms[j]
            rest = [atoms[k] for k in range(n) if k not in (i, j)]
            for sym in ops:
                res = _OPS[sym](a, b)
                if res is None:
                    continue
                out |= _reachable(_atoms_key(rest + [res]), ops)
    return frozenset(out)


# ============================================================
# Target selection
# ============================================================

@dataclass(frozen=True)
class TargetChoice:
    value: int
    reachable: bool
    widened: bool = False    # nearest reachable value outside the target range
    fallback: bool = False   # clamped value, may not be reachable


def generate_target(values: Sequence[int], profile: DifficultyProfile,
                    rng: Optional[random.Random] = None, strict: bool = True) -> TargetChoice:
    """
    Pick a target for a round. In-range reachable values are chosen uniformly.
    Otherwise the reachable value closest to the range is used: as-is when
    `strict`, clamped into the range when not (the clamp may be unreachable).
    """
    rng = rng or random
    rng_range = profile.target_range
    reachable = compute_reachable_set(values, profile.operators)

    in_range = sorted(v for v in reachable if rng_range.contains(v))
    if in_range:
        return TargetChoice(value=rng.choice(in_range), reachable=True)

    positives = [v for v in reachable if v > 0]
    if positives:
        closest = min(positives, key=lambda v: (rng_range.distance(v), v))
        if strict:
            logger.info("no reachable target in %s..%s for %s; widening to %d",
                        rng_range.min, rng_range.max, list(values), closest)
            return TargetChoice(value=closest, reachable=True, widened=True)
        clamped = rng_range.clamp(closest)
        logger.warning("no reachable target in range for %s; clamped fallback %d (closest %d)",
                       list(values), clamped, closest)
        return TargetChoice(value=clamped, reachable=clamped in reachable, fallback=True)

    clamped = rng_range.clamp(sum(int(v) for v in values))
    logger.warning("empty reachable set for %s; using clamped sum %d", list(values), clamped)
    return TargetChoice(value=clamped, reachable=clamped in reachable, fallback=True)


def pick_target(values: Sequence[int], profile: DifficultyProfile,
                rng: Optional[random.Random] = None, strict: bool = True) -> int:
    return generate_target(values, profile, rng=rng, strict=strict).value


# ============================================================
# Solution search
# ============================================================

@dataclass(frozen=True)
class Expression:
    text: str
    value: int
    precedence: int = ATOM


def _wrap(e: Expression, needed: int) -> str:
    return f"({e.text})" if e.precedence < needed else e.text


def _wrap_right(e: Expression) -> str:
    # right operand of - and / is grouped whenever it is composite
    return e.text if e.precedence == ATOM else f"({e.text})"


def combine(a: Expression, b: Expression, sym: str) -> Optional[Expression]:
    if sym == "+":
        return Expression(f"{a.text} + {b.text}", a.value + b.value, ADD)
    if sym == "-":
        return Expression(f"{a.text} - {_wrap_right(b)}", a.value - b.value, ADD)
    if sym == "*":
        return Expression(f"{_wrap(a, MUL)} * {_wrap(b, MUL)}", a.value * b.value, MUL)
    if sym == "/":
        q = _exact_div(a.value, b.value)
        if q is None:
            return None
        return Expression(f"{_wrap(a, MUL)} / {_wrap_right(b)}", q, MUL)
    raise ValueError(f"unknown operator {sym!r}")


def find_solving_expression(cards: Sequence[int], target: int,
                            operators: Iterable[str] = OPERATORS,
                            variable_values: Optional[Mapping[str, int]] = None) -> Optional[str]:
    """
    First expression (deterministic search order) whose value equals `target`,
    or None when the target cannot be reached. Variables render as symbols.
    """
    items: List[Expression] = [Expression(str(int(c)), int(c)) for c in cards]
    for sym, value in (variable_values or {}).items():
        items.append(Expression(sym, int(value)))
    if not items:
        return None
    return _search(items, target, _ops_key(operators), set())


def _search(items: List[Expression], target: int, ops: str,
            dead: Set[Tuple[int, ...]]) -> Optional[str]:
    for it in items:
        if abs(it.value - target) < EPSILON:
            return it.text
    n = len(items)
    if n == 1:
        return None
    key = _atoms_key(it.value for it in items)
    if key in dead:
        return None
    for i in range(n):
        for j in range(n):
            if i == j:
                continue
            rest = [items[k] for k in range(n) if k not in (i, j)]
            for sym in ops:
                combined = combine(items[i], items[j], sym)
                if combined is None:
                    continue
                found = _search([combined] + rest, target, ops, dead)
                if found is not None:
                    return found
    # value-multiset cannot reach the target, whatever the rendering
    dead.add(key)
    return None


def solve_for_profile(cards: Sequence[int], target: int, profile: DifficultyProfile,
                      variable_values: Optional[Mapping[str, int]] = None) -> Optional[str]:
    return find_solving_expression(cards, target, profile.operators, variable_values)


def round_atoms(cards: Sequence[int], variable_values: Optional[Mapping[str, int]] = None) -> List[int]:
    """Numeric atoms for a round: cards followed by bound variable values."""
    return [int(c) for c in cards] + [int(v) for v in (variable_values or {}).values()]


__all__ = [
    "OPERATORS", "MAX_ATOMS", "TargetChoice", "Expression",
    "compute_reachable_set", "generate_target", "pick_target",
    "combine", "find_solving_expression", "solve_for_profile", "round_atoms",
]
