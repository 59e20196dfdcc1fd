# arithduel/games/core/evaluator.py
"""
Restricted arithmetic evaluator for submitted expressions.

Grammar: integer/decimal literals, bound variable symbols, unary +/-,
binary + - * /, parentheses. Evaluation is exact (Fraction); nothing is
handed to eval().
"""
from __future__ import annotations
import ast
import re
from fractions import Fraction
from typing import Dict, Mapping, Optional, Union

from .errors import EvaluationError

MAX_EXPRESSION_LENGTH = 256

# pure arithmetic only once variables are substituted
_TOKENS_RE = re.compile(r"^[\d.\s+\-*/()]*$")

_ALLOWED_NODES = (
    ast.Expression, ast.BinOp, ast.UnaryOp, ast.Constant,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.USub, ast.UAdd,
)

_GLYPHS = {
    "×": "*", "∗": "*", "·": "*",
    "÷": "/", "／": "/",
    "−": "-", "—": "-", "–": "-",
}

Number = Union[int, float]


def normalize_expression(expr: Optional[str]) -> str:
    """Unify common math glyphs into plain ASCII operators."""
    s = (expr or "").strip()
    for glyph, op in _GLYPHS.items():
        s = s.replace(glyph, op)
    return s


def substitute_variables(expr: str, variable_values: Optional[Mapping[str, int]] = None) -> str:
    """
    Insert implicit multiplication around variable symbols, then replace each
    symbol with its parenthesized value:
      '3x + 5'   -> '3*(4) + 5'
      '(2+1)x'   -> '(2+1)*(4)'
      'x(2+1)'   -> '(4)*(2+1)'
    """
    if not variable_values:
        return expr
    symbols = "".join(re.escape(sym) for sym in variable_values)
    cls = f"[{symbols}]"
    s = re.sub(rf"(\d)({cls})", r"\1*\2", expr)
    s = re.sub(rf"(\))({cls})", r"\1*\2", s)
    s = re.sub(rf"({cls})(\()", r"\1*\2", s)
    s = re.sub(rf"({cls})(\d)", r"\1*\2", s)
    for sym, value in variable_values.items():
        s = s.replace(sym, f"({int(value)})")
    return s


def _rec(n: ast.AST) -> Fraction:
    if not isinstance(n, _ALLOWED_NODES):
        raise EvaluationError(f"disallowed: {type(n).__name__}")
    if isinstance(n, ast.Expression):
        return _rec(n.body)
    if isinstance(n, ast.Constant):
        v = n.value
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise EvaluationError("constant must be number")
        try:
            return Fraction(v) if isinstance(v, int) else Fraction(str(v))
        except (ValueError, OverflowError) as e:
            raise EvaluationError("non-finite number") from e
    if isinstance(n, ast.UnaryOp):
        v = _rec(n.operand)
        if isinstance(n.op, ast.USub):
            return -v
        if isinstance(n.op, ast.UAdd):
            return v
        raise EvaluationError("bad unary op")
    if isinstance(n, ast.BinOp):
        a = _rec(n.left)
        b = _rec(n.right)
        if isinstance(n.op, ast.Add):
            return a + b
        if isinstance(n.op, ast.Sub):
            return a - b
        if isinstance(n.op, ast.Mult):
            return a * b
        if isinstance(n.op, ast.Div):
            if b == 0:
                raise EvaluationError("division by zero")
            return a / b
        raise EvaluationError("bad binop")
    raise EvaluationError("bad node")


def evaluate_arithmetic(expr: str) -> Fraction:
    """Evaluate a pure-arithmetic string (no variables left)."""
    if not expr or not expr.strip():
        raise EvaluationError("empty expression")
    if len(expr) > MAX_EXPRESSION_LENGTH:
        raise EvaluationError("expression too long")
    if not _TOKENS_RE.match(expr):
        raise EvaluationError("unexpected characters in expression")
    try:
        tree = ast.parse(expr.strip(), mode="eval")
    except (SyntaxError, ValueError) as e:
        raise EvaluationError(f"malformed expression: {e}") from e
    return _rec(tree)


def evaluate(expr: Optional[str], variable_values: Optional[Mapping[str, int]] = None) -> Fraction:
    """Normalize, substitute variables, evaluate. Raises EvaluationError."""
    s = normalize_expression(expr)
    return evaluate_arithmetic(substitute_variables(s, variable_values))


def try_evaluate(expr: Optional[str], variable_values: Optional[Mapping[str, int]] = None) -> Optional[Fraction]:
    try:
        return evaluate(expr, variable_values)
    except EvaluationError:
        return None


def as_number(value: Optional[Fraction]) -> Optional[Number]:
    """Fraction -> int when integral, float otherwise (JSON friendly)."""
    if value is None:
        return None
    if value.denominator == 1:
        return int(value)
    return float(value)


def check_parentheses(expr: str) -> Dict[str, object]:
    """Balance check; returns {'valid', 'open_count', 'close_count'}."""
    depth = opened = closed = 0
    for ch in expr or "":
        if ch == "(":
            depth += 1
            opened += 1
        elif ch == ")":
            depth -= 1
            closed += 1
            if depth < 0:
                return {"valid": False, "open_count": opened, "close_count": closed}
    return {"valid": depth == 0, "open_count": opened, "close_count": closed}
