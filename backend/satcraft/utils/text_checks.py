"""
Deterministic text helpers used by the validators.

  - Safe arithmetic evaluation (AST allowlist, never ``eval``)
  - Explanation arithmetic audit: finds claims like "3 + 4 = 8" or
    "14/13 simplifies to 4" and reports the ones that are false
  - Word overlap (Jaccard) and repeated-sentence detection
"""
from __future__ import annotations

import ast
import operator
import re
from typing import Optional

# ---------------------------------------------------------------------------
# Safe arithmetic evaluator
# ---------------------------------------------------------------------------

_SAFE_OPS: dict = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Pow: operator.pow,
}


def _eval_node(node: ast.AST) -> Optional[float]:
    """Recursively evaluate an AST node. Returns None for unsupported nodes."""
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
            and not isinstance(node.value, bool):
        return float(node.value)
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)):
        operand = _eval_node(node.operand)
        if operand is None:
            return None
        return -operand if isinstance(node.op, ast.USub) else operand
    if isinstance(node, ast.BinOp) and type(node.op) in _SAFE_OPS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if left is None or right is None:
            return None
        if isinstance(node.op, ast.Div) and right == 0:
            return None
        if isinstance(node.op, ast.Pow) and abs(right) > 10:
            return None
        return _SAFE_OPS[type(node.op)](left, right)
    return None


def safe_eval(expr: str) -> Optional[float]:
    """Evaluate a numeric expression with + - * / ^ only; None if unsupported."""
    try:
        tree = ast.parse(expr.strip().replace("^", "**"), mode="eval")
    except (SyntaxError, ValueError):
        return None
    try:
        return _eval_node(tree.body)
    except (OverflowError, ZeroDivisionError):
        return None


# ---------------------------------------------------------------------------
# Explanation arithmetic audit
# ---------------------------------------------------------------------------

_OP_NORMALISE = str.maketrans({"×": "*", "÷": "/", "–": "-", "−": "-", "·": "*"})

_NUM = r"-?\d+(?:\.\d+)?"
_EXPR = rf"{_NUM}(?:\s*[-+*/^]\s*{_NUM})+"

# "A op B (op C...) = R"
_EQUATION_RE = re.compile(rf"(?<![\w.^)*/+\-])(?<![*/+\-]\s)({_EXPR})\s*=\s*({_NUM})(?!\w|\.\d|\s*[-+*/^]\s*\d)")

# "14/13 simplifies to 4", "6/8 reduces to 3/4"
_SIMPLIFY_RE = re.compile(
    rf"(?<![\w.])({_NUM}\s*/\s*{_NUM})\s+(?:simplifies|reduces|is equal|equals|evaluates)\s+(?:to\s+)?({_NUM}(?:\s*/\s*{_NUM})?)",
    re.IGNORECASE,
)


def _close(a: float, b: float) -> bool:
    return abs(a - b) <= 1e-6 * max(1.0, abs(a), abs(b))


def audit_arithmetic(text: str) -> list[str]:
    """Return one message per false arithmetic claim found in ``text``."""
    if not text:
        return []
    normalised = text.translate(_OP_NORMALISE)
    errors: list[str] = []
    seen: set[str] = set()

    for m in _SIMPLIFY_RE.finditer(normalised):
        lhs, rhs = m.group(1), m.group(2)
        left, right = safe_eval(lhs), safe_eval(rhs)
        claim = m.group(0).strip()
        if left is None or right is None or claim in seen:
            continue
        seen.add(claim)
        if not _close(left, right):
            errors.append(f'Incorrect simplification: "{claim}" ({lhs} = {left:g}, not {rhs})')

    for m in _EQUATION_RE.finditer(normalised):
        lhs, rhs = m.group(1), m.group(2)
        left, right = safe_eval(lhs), safe_eval(rhs)
        claim = f"{lhs} = {rhs}"
        if left is None or right is None or claim in seen:
            continue
        seen.add(claim)
        if not _close(left, right):
            errors.append(f'Incorrect calculation: "{claim}" (actual value {left:g})')

    return errors


# ---------------------------------------------------------------------------
# Overlap helpers
# ---------------------------------------------------------------------------

def jaccard(a: str, b: str) -> float:
    a_words = set(_words(a))
    b_words = set(_words(b))
    if not a_words or not b_words:
        return 0.0
    return len(a_words & b_words) / len(a_words | b_words)


def _words(text: str) -> list[str]:
    return re.findall(r"[a-z0-9°]+", (text or "").lower())


def word_count(text: str) -> int:
    return len((text or "").split())


def repeated_sentences(text: str) -> list[str]:
    """Sentences (normalised) that occur more than once in ``text``."""
    seen: dict[str, int] = {}
    out: list[str] = []
    for raw in re.split(r"(?<=[.!?])\s+|\n+", text or ""):
        key = " ".join(_words(raw))
        if len(key.split()) < 3:
            continue
        seen[key] = seen.get(key, 0) + 1
        if seen[key] == 2:
            out.append(raw.strip())
    return out
