"""Arithmetic formula evaluation over a whitelisted expression tree."""

from __future__ import annotations

import ast
import math
import operator
import re
from typing import Any, Callable, Dict, Mapping

MAX_EXPONENT = 100

_BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class FormulaError(ValueError):
    """The formula is malformed or uses something other than arithmetic."""


def substitute(formula: str, variables: Mapping[str, Any]) -> str:
    """Replace whole-word variable names with their values, longest first."""
    text = formula
    for name in sorted(variables, key=len, reverse=True):
        text = re.sub(rf"\b{re.escape(name)}\b", str(variables[name]), text)
    return text


def _eval(node: ast.AST, names: Mapping[str, float]) -> float:
    if isinstance(node, ast.Expression):
        return _eval(node.body, names)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise FormulaError(f"Unsupported literal: {node.value!r}")
        return node.value
    if isinstance(node, ast.Name):
        if node.id not in names:
            raise FormulaError(f"Unknown variable: {node.id}")
        return names[node.id]
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left = _eval(node.left, names)
        right = _eval(node.right, names)
        if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
            raise FormulaError("Exponent too large")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval(node.operand, names))
    raise FormulaError(f"Unsupported expression: {type(node).__name__}")


def evaluate(formula: str, names: Mapping[str, float] | None = None) -> float:
    """Evaluate ``formula`` with ``names`` bound to numbers."""
    try:
        tree = ast.parse(formula.strip(), mode="eval")
    except SyntaxError as exc:
        raise FormulaError(f"Invalid formula: {formula!r}") from exc
    try:
        result = _eval(tree, names or {})
    except ZeroDivisionError as exc:
        raise FormulaError("Division by zero") from exc
    except OverflowError as exc:
        raise FormulaError(f"Result of {formula!r} is out of range") from exc
    if isinstance(result, float) and not math.isfinite(result):
        raise FormulaError(f"Result of {formula!r} is not a finite number")
    return result
