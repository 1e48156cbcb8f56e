from __future__ import annotations

import operator
import re
from dataclasses import dataclass
from typing import Callable


_EXPR_RE = re.compile(r"(-?\d+(?:\.\d+)?)\s*([-+*/^%×÷x])\s*(-?\d+(?:\.\d+)?)")

_OPS: dict[str, tuple[str, Callable[[float, float], float]]] = {
    "+": ("+", operator.add),
    "-": ("-", operator.sub),
    "*": ("×", operator.mul),
    "x": ("×", operator.mul),
    "×": ("×", operator.mul),
    "/": ("÷", operator.truediv),
    "÷": ("÷", operator.truediv),
    "%": ("mod", operator.mod),
    "^": ("^", operator.pow),
}


class UndefinedResult(ValueError):
    pass


@dataclass(frozen=True)
class Calculation:
    left: float
    op: str
    right: float
    value: float

    def render(self) -> str:
        return f"{_fmt(self.left)} {self.op} {_fmt(self.right)} = {_fmt(self.value)}"


def _fmt(n: float) -> str:
    if float(n).is_integer():
        return str(int(n))
    return f"{n:.6g}"


def evaluate(text: str) -> Calculation | None:
    """Evaluate the first `a op b` expression in the text.

    Returns None when there is no expression. Raises UndefinedResult for
    undefined results such as division by zero.
    """
    m = _EXPR_RE.search(text or "")
    if not m:
        return None
    left, sym, right = float(m.group(1)), m.group(2), float(m.group(3))
    label, fn = _OPS[sym]
    if fn in (operator.truediv, operator.mod) and right == 0:
        raise UndefinedResult("division by zero")
    if fn is operator.pow and (abs(right) > 64 or (left < 0 and not right.is_integer())):
        raise UndefinedResult("exponent out of range")
    try:
        value = fn(left, right)
    except OverflowError as e:
        raise UndefinedResult("result too large") from e
    return Calculation(left=left, op=label, right=right, value=value)
