"""Formula language for computed fields.

Formulas are short expressions such as ``${price} * ${quantity}`` or
``IF(${age} >= 18, 'adult', 'minor')``. They are tokenized and parsed by a
recursive-descent parser over a fixed grammar and evaluated against the
current field values. Only the functions in ``_FUNCTIONS`` (plus ``IF``) and
the string methods in ``_METHODS`` are reachable from a formula; anything
else is a ``FormulaError`` which ``evaluate_formula`` turns into ``"Error"``.

Operator behaviour follows JavaScript where authors rely on it: ``+``
concatenates when either side is text, division by zero gives Infinity or
NaN, ``&&``/``||`` return one of their operands.
"""
import logging
import math
import re
from collections import namedtuple
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from .coerce import NAN, number_to_string, parse_float_prefix, parse_int_prefix, to_number
from .dates import ISO_PATTERN, format_date, parse_date
from .types import FieldType, field_lookup

logger = logging.getLogger(__name__)

ERROR_RESULT = "Error"
MAX_DEPTH = 64


class FormulaError(ValueError):
    pass


Token = namedtuple("Token", "kind text pos")

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<ref>\$\{[^}]*\})
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
  | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>===|!==|==|!=|>=|<=|&&|\|\||[-+*/%<>!(),.?:])
    """,
    re.VERBOSE,
)

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def _unquote(literal: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), literal[1:-1], flags=re.S)


def tokenize(source: str) -> List[Token]:
    tokens = []
    pos = 0
    while pos < len(source):
        m = _TOKEN_RE.match(source, pos)
        if not m:
            raise FormulaError(f"unexpected character {source[pos]!r} at {pos}")
        if m.lastgroup != "ws":
            tokens.append(Token(m.lastgroup, m.group(), pos))
        pos = m.end()
    tokens.append(Token("end", "", pos))
    return tokens


# ---------- values ----------

def _is_date(value) -> bool:
    return isinstance(value, date)


def _is_number(value) -> bool:
    return isinstance(value, float)


def _as_datetime(value) -> datetime:
    return value if isinstance(value, datetime) else datetime.combine(value, time())


def truthy(value) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def to_text(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return number_to_string(value)
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def format_result(value) -> str:
    if value is None:
        return ""
    if isinstance(value, date):
        return format_date(value, ISO_PATTERN)
    return to_text(value)


# ---------- operators ----------

def _add(a, b):
    if isinstance(a, str) or isinstance(b, str):
        return to_text(a) + to_text(b)
    if _is_date(a) and _is_number(b):
        return a + timedelta(days=b)
    if _is_number(a) and _is_date(b):
        return b + timedelta(days=a)
    return to_number(a) + to_number(b)


def _subtract(a, b):
    if _is_date(a) and _is_date(b):
        return (_as_datetime(a) - _as_datetime(b)).total_seconds() / 86400
    if _is_date(a) and _is_number(b):
        return a - timedelta(days=b)
    return to_number(a) - to_number(b)


def _divide(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0:
        if x == 0 or math.isnan(x):
            return NAN
        return math.copysign(math.inf, x) * math.copysign(1.0, y)
    return x / y


def _modulo(a, b):
    x, y = to_number(a), to_number(b)
    if y == 0 or math.isinf(x) or math.isnan(y):
        return NAN
    if math.isinf(y):
        return x
    return math.fmod(x, y)


def _relational(op):
    def run(a, b):
        if isinstance(a, str) and isinstance(b, str):
            return op(a, b)
        if _is_date(a) and _is_date(b):
            return op(_as_datetime(a), _as_datetime(b))
        return op(to_number(a), to_number(b))
    return run


def _equals(a, b) -> bool:
    if a is None or b is None:
        return a is b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if _is_date(a) and _is_date(b):
        return _as_datetime(a) == _as_datetime(b)
    return to_number(a) == to_number(b)


_BINARY = {
    "+": _add,
    "-": _subtract,
    "*": lambda a, b: to_number(a) * to_number(b),
    "/": _divide,
    "%": _modulo,
    "<": _relational(lambda a, b: a < b),
    ">": _relational(lambda a, b: a > b),
    "<=": _relational(lambda a, b: a <= b),
    ">=": _relational(lambda a, b: a >= b),
    "==": _equals,
    "===": _equals,
    "!=": lambda a, b: not _equals(a, b),
    "!==": lambda a, b: not _equals(a, b),
}

_LEVELS = (
    ("||",),
    ("&&",),
    ("==", "!=", "===", "!=="),
    ("<", ">", "<=", ">="),
    ("+", "-"),
    ("*", "/", "%"),
)


# ---------- built-in functions ----------

def _format_date(value, pattern=ISO_PATTERN):
    if isinstance(value, str):
        value = parse_date(value)
    if not isinstance(value, date):
        return ""
    return format_date(value, to_text(pattern))


def _round(number, decimals=0.0):
    # shift through the decimal string so 1.005 rounds to 1.01
    places = int(to_number(decimals))
    try:
        shifted = float(f"{to_text(number)}e{places}")
    except ValueError:
        return NAN
    if not math.isfinite(shifted):
        return shifted
    return float(f"{math.floor(shifted + 0.5)}e{-places}")


def _sum(*args):
    total = 0.0
    for arg in args:
        n = to_number(arg)
        if not math.isnan(n):
            total += n
    return total


def _avg(*args):
    numbers = [n for n in (to_number(a) for a in args) if not math.isnan(n)]
    return sum(numbers) / len(numbers) if numbers else 0.0


_FUNCTIONS = {
    "TODAY": date.today,
    "NOW": datetime.now,
    "FORMAT_DATE": _format_date,
    "formatDate": _format_date,
    "round": _round,
    "sum": _sum,
    "avg": _avg,
    "parseInt": parse_int_prefix,
    "parseFloat": parse_float_prefix,
}

_METHODS = {
    "toUpperCase": str.upper,
    "toLowerCase": str.lower,
    "trim": str.strip,
}

_CONSTANTS = {
    "true": True,
    "false": False,
    "null": None,
    "NaN": NAN,
    "Infinity": math.inf,
}


# ---------- parser ----------

class _Parser:
    """Builds a tuple tree: ("value", v), ("ref", id, text_context),
    ("unary", op, node), ("binary", op, left, right), ("cond", c, a, b),
    ("call", name, args), ("method", name, node)."""

    def __init__(self, source: str):
        self.tokens = tokenize(source)
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _accept(self, *ops) -> Optional[str]:
        tok = self.current
        if tok.kind == "op" and tok.text in ops:
            self.index += 1
            return tok.text
        return None

    def _expect(self, op: str):
        if self._accept(op) is None:
            raise FormulaError(f"expected {op!r} at {self.current.pos}")

    def parse(self):
        node = self._expression()
        if self.current.kind != "end":
            raise FormulaError(f"unexpected {self.current.text!r} at {self.current.pos}")
        return node

    def _expression(self):
        node = self._binary(0)
        if self._accept("?"):
            when_true = self._expression()
            self._expect(":")
            return ("cond", node, when_true, self._expression())
        return node

    def _binary(self, level: int):
        if level == len(_LEVELS):
            return self._unary()
        node = self._binary(level + 1)
        while True:
            op = self._accept(*_LEVELS[level])
            if op is None:
                return node
            node = ("binary", op, node, self._binary(level + 1))

    def _unary(self):
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise FormulaError("formula is nested too deeply")
        try:
            op = self._accept("!", "-", "+")
            if op:
                return ("unary", op, self._unary())
            return self._postfix()
        finally:
            self.depth -= 1

    def _postfix(self):
        node = self._primary()
        while self._accept("."):
            name = self.current
            if name.kind != "name" or name.text not in _METHODS:
                raise FormulaError(f"unsupported method {name.text!r}")
            self.index += 1
            self._expect("(")
            self._expect(")")
            if node[0] == "ref":
                # a missing field used as text defaults to "" rather than 0
                node = ("ref", node[1], True)
            node = ("method", name.text, node)
        return node

    def _primary(self):
        tok = self.current
        self.index += 1
        if tok.kind == "number":
            return ("value", float(tok.text))
        if tok.kind == "string":
            return ("value", _unquote(tok.text))
        if tok.kind == "ref":
            return ("ref", tok.text[2:-1].strip(), False)
        if tok.kind == "name":
            if tok.text in _CONSTANTS:
                return ("value", _CONSTANTS[tok.text])
            if tok.text != "IF" and tok.text not in _FUNCTIONS:
                raise FormulaError(f"unsupported name {tok.text!r}")
            self._expect("(")
            return ("call", tok.text, self._arguments())
        if tok.kind == "op" and tok.text == "(":
            node = self._expression()
            self._expect(")")
            return node
        raise FormulaError(f"unexpected {tok.text or 'end of formula'!r} at {tok.pos}")

    def _arguments(self) -> list:
        args = []
        if self._accept(")"):
            return args
        while True:
            args.append(self._expression())
            if self._accept(")"):
                return args
            self._expect(",")


# ---------- evaluation ----------

class _Evaluator:
    def __init__(self, fields: Dict[str, object]):
        self.fields = fields

    def eval(self, node):
        kind = node[0]
        if kind == "value":
            return node[1]
        if kind == "ref":
            return self._reference(node[1], node[2])
        if kind == "unary":
            operand = self.eval(node[2])
            if node[1] == "!":
                return not truthy(operand)
            return -to_number(operand) if node[1] == "-" else to_number(operand)
        if kind == "binary":
            return self._binary(node[1], node[2], node[3])
        if kind == "cond":
            return self.eval(node[2] if truthy(self.eval(node[1])) else node[3])
        if kind == "method":
            return _METHODS[node[1]](to_text(self.eval(node[2])))
        if kind == "call":
            return self._call(node[1], node[2])
        raise FormulaError(f"unknown node {kind!r}")

    def _binary(self, op, left, right):
        if op == "&&":
            value = self.eval(left)
            return self.eval(right) if truthy(value) else value
        if op == "||":
            value = self.eval(left)
            return value if truthy(value) else self.eval(right)
        return _BINARY[op](self.eval(left), self.eval(right))

    def _call(self, name, args):
        if name == "IF":
            if len(args) != 3:
                raise FormulaError("IF expects a condition and two branches")
            return self.eval(args[1] if truthy(self.eval(args[0])) else args[2])
        return _FUNCTIONS[name](*[self.eval(a) for a in args])

    def _reference(self, field_id: str, text_context: bool):
        field = self.fields.get(field_id)
        value = getattr(field, "value", None)
        if not value:
            return "" if text_context else 0.0
        if getattr(field, "type", None) == FieldType.DATE.value:
            parsed = parse_date(value)
            if parsed is not None:
                return parsed
        number = to_number(value)
        if not math.isnan(number):
            return number
        return str(value)


def evaluate_expression(source: str, fields: Dict[str, object]):
    """Parse and evaluate ``source``; returns the raw value, raises ``FormulaError``."""
    return _Evaluator(fields).eval(_Parser(source).parse())


# ---------- IF(...) at the top level ----------

_IF_RE = re.compile(r"\s*IF\s*\(", re.IGNORECASE)


def split_arguments(text: str, start: int) -> Tuple[List[str], Optional[int]]:
    """Split an argument list at top-level commas.

    ``start`` is the index just after the opening parenthesis. Returns the
    stripped arguments and the index after the closing parenthesis, or
    ``None`` for the index when the list is never closed.
    """
    args = []
    depth = 0
    quote = None
    begin = i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            if depth == 0:
                args.append(text[begin:i].strip())
                return args, i + 1
            depth -= 1
        elif ch == "," and depth == 0:
            args.append(text[begin:i].strip())
            begin = i + 1
        i += 1
    return args, None


def _split_if(formula: str) -> Optional[List[str]]:
    m = _IF_RE.match(formula)
    if not m:
        return None
    args, end = split_arguments(formula, m.end())
    if end is None or formula[end:].strip():
        return None
    return args


def _evaluate_conditional(args: List[str], fields: Dict[str, object]) -> str:
    if len(args) != 3 or not all(args):
        raise FormulaError("IF expects a condition and two branches")
    condition, when_true, when_false = args
    outcome = _run(condition, fields)
    if outcome == "true":
        met = True
    elif outcome == "false":
        met = False
    else:
        try:
            met = truthy(evaluate_expression(outcome, {}))
        except (ValueError, TypeError, ArithmeticError):
            met = False
    return _run(when_true if met else when_false, fields)


def _run(formula: str, fields: Dict[str, object]) -> str:
    if not formula or not formula.strip():
        return ""
    try:
        branches = _split_if(formula)
        if branches is not None:
            return _evaluate_conditional(branches, fields)
        return format_result(evaluate_expression(formula, fields))
    except (ValueError, TypeError, ArithmeticError, RecursionError) as exc:
        logger.warning("Formula %r could not be evaluated: %s", formula, exc)
        return ERROR_RESULT


def evaluate_formula(formula: Optional[str], all_fields) -> str:
    """Evaluate ``formula`` against ``all_fields`` and return the result as text.

    Never raises: malformed or unsupported formulas give ``"Error"``.
    References to missing or empty fields read as ``0`` (or ``""`` when used
    with a string method).
    """
    return _run(formula or "", field_lookup(all_fields))
