from __future__ import annotations

import abc
import functools
import logging
import math
import re
import sys
import typing
from decimal import ROUND_DOWN, Decimal

logger = logging.getLogger(__name__)

DECIMAL_PLACES = 5
EPSILON = 1e-5
MAX_VALUE = sys.float_info.max

# floats at or above 2**52 have no fractional part left to truncate
_EXACT_INTEGER_LIMIT = 2.0 ** 52
_QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)
_NUMBER_PATTERN = re.compile(r"[0-9]+(\.[0-9]*)?|\.[0-9]+")


class ExpressionException(Exception): ...


class InvalidConstantException(ExpressionException): ...


class InvalidVariableException(ExpressionException): ...


class ParsingException(ExpressionException): ...


def truncate5(x: float) -> float:
    """Truncate ``x`` toward zero at the fifth fractional digit.

    The shortest decimal form of the float is truncated, not its binary
    expansion, so ``truncate5(0.29) == 0.29``.
    """
    if not math.isfinite(x) or abs(x) >= _EXACT_INTEGER_LIMIT:
        return x

    return float(Decimal(repr(float(x))).quantize(_QUANTUM, rounding=ROUND_DOWN))


def _saturate(x: float) -> float:
    if math.isinf(x):
        logger.debug("Arithmetic overflow, clamping to %r.", MAX_VALUE)
        return MAX_VALUE
    return x


def _check_number(num: typing.Any) -> float:
    if isinstance(num, bool) or not isinstance(num, (int, float)):
        raise InvalidConstantException(f"Constants must be numbers, got {num!r}.")

    try:
        num = float(num)
    except OverflowError as e:
        raise InvalidConstantException(f"Constant {num!r} is too large.") from e

    if math.isnan(num) or math.isinf(num):
        raise InvalidConstantException(f"Constants must be finite, got {num!r}.")
    if num < 0:
        raise InvalidConstantException(f"Constants must be non-negative, got {num!r}.")

    # -0.0 passes the sign check but would render as "-0"
    return num + 0.0


def _check_name(name: typing.Any) -> str:
    if not isinstance(name, str) or not name:
        raise InvalidVariableException(f"Variable names must be non-empty strings, got {name!r}.")

    if not (name.isascii() and name.isalpha()):
        raise InvalidVariableException(f"Variable name contains invalid chars: {name!r}.")

    return name


def _check_expression(e: typing.Any) -> Expression:
    if not isinstance(e, Expression):
        raise TypeError(f"Expected an Expression, got {type(e).__name__}.")
    return e


def _constant_operand(num: float) -> Constant:
    return Constant(truncate5(_check_number(num)))


class Expression(abc.ABC):
    """Immutable polynomial expression over ``+``, ``*``, constants and variables.

    The six combinators never modify ``self`` or their operand, they return a
    new expression (or one of the existing ones unchanged) with whatever
    simplification the receiving variant knows how to apply.

    Rendering, equality and hashing recurse through the tree, so expressions
    nested deeper than the interpreter recursion limit raise ``RecursionError``.
    """

    args: tuple[Expression, ...]

    def __init__(self, *args: Expression):
        self.args = tuple(_check_expression(arg) for arg in args)

    @abc.abstractmethod
    def add_expr(self, e: Expression) -> Expression:
        """Return ``self + e``.

        Adding zero returns the other operand and adding an expression equal
        to ``self`` doubles it.
        """

    @abc.abstractmethod
    def multiply_expr(self, e: Expression) -> Expression:
        """Return ``self * e``, absorbing zero and one."""

    @abc.abstractmethod
    def add_variable(self, name: str) -> Expression:
        """Prepend ``name`` to this expression with an addition."""

    @abc.abstractmethod
    def multiply_variable(self, name: str) -> Expression:
        """Prepend ``name`` to this expression as a factor."""

    @abc.abstractmethod
    def add_constant(self, num: float) -> Expression:
        """Prepend ``num`` (truncated to 5 decimals) with an addition."""

    @abc.abstractmethod
    def append_coefficient(self, num: float) -> Expression:
        """Prepend ``num`` (truncated to 5 decimals) as a coefficient."""

    @abc.abstractmethod
    def to_str(self) -> str:
        ...

    @property
    def is_zero(self) -> bool:
        return False

    @property
    def is_one(self) -> bool:
        return False

    @staticmethod
    def from_str(expr: str) -> Expression:
        return parse(expr)

    def walk(self) -> typing.Iterable[Expression]:
        yield self

        for arg in self.args:
            yield from arg.walk()

    def __eq__(self, other):
        if not isinstance(other, Expression):
            return NotImplemented

        if self.__class__ != other.__class__:
            return False

        return self is other or self.to_str() == other.to_str()

    def __hash__(self):
        return hash((self.__class__.__name__, self.to_str()))

    def __str__(self):
        return self.to_str()

    def __repr__(self):
        return str(self)


class Constant(Expression):
    def __init__(self, value: float):
        super().__init__()
        self.value = _check_number(value)

    @property
    def truncated(self) -> float:
        return truncate5(self.value)

    @property
    def is_zero(self) -> bool:
        return self.truncated == 0

    @property
    def is_one(self) -> bool:
        return self.truncated == 1

    def add_expr(self, e: Expression) -> Expression:
        _check_expression(e)

        if e == self:
            return Constant(_saturate(self.value * 2))
        if self.is_zero:
            return e
        if e.is_zero:
            return self

        return e.add_constant(self.value)

    def multiply_expr(self, e: Expression) -> Expression:
        _check_expression(e)

        if self.is_zero or e.is_zero:
            return Constant(0)
        if self.is_one:
            return e
        if e.is_one:
            return self

        return e.append_coefficient(self.value)

    def add_variable(self, name: str) -> Expression:
        variable = Variable(name)

        if self.is_zero:
            return variable

        return Sum(variable, self)

    def multiply_variable(self, name: str) -> Expression:
        variable = Variable(name)

        if self.is_zero:
            return Constant(0)
        if self.is_one:
            return variable

        return Product(variable, self)

    def add_constant(self, num: float) -> Expression:
        return Constant(_saturate(truncate5(_check_number(num)) + self.value))

    def append_coefficient(self, num: float) -> Expression:
        return Constant(_saturate(truncate5(_check_number(num)) * self.value))

    def to_str(self) -> str:
        out = format(Decimal(repr(self.truncated)), "f")

        if "." in out:
            out = out.rstrip("0").rstrip(".")

        return out

    def __eq__(self, other):
        if not isinstance(other, Expression):
            return NotImplemented

        if not isinstance(other, Constant):
            return False

        # both sides sit on the 1e-5 grid after truncation
        return abs(self.truncated - other.truncated) < EPSILON / 2

    def __hash__(self):
        return hash(self.truncated)


class Variable(Expression):
    def __init__(self, name: str):
        super().__init__()
        self.name = _check_name(name)

    def add_expr(self, e: Expression) -> Expression:
        _check_expression(e)

        if e.is_zero:
            return self

        # TODO: fold x + x into 2*x once Sum can merge repeated variables
        return e.add_variable(self.name)

    def multiply_expr(self, e: Expression) -> Expression:
        _check_expression(e)

        if e.is_zero:
            return Constant(0)
        if e.is_one:
            return self

        return e.multiply_variable(self.name)

    def add_variable(self, name: str) -> Expression:
        return Sum(Variable(name), self)

    def multiply_variable(self, name: str) -> Expression:
        return Product(Variable(name), self)

    def add_constant(self, num: float) -> Expression:
        constant = _constant_operand(num)

        if constant.is_zero:
            return self

        return Sum(constant, self)

    def append_coefficient(self, num: float) -> Expression:
        constant = _constant_operand(num)

        if constant.is_zero:
            return Constant(0)
        if constant.is_one:
            return self

        return Product(constant, self)

    def to_str(self) -> str:
        return self.name

    def __eq__(self, other):
        if not isinstance(other, Expression):
            return NotImplemented

        if not isinstance(other, Variable):
            return False

        return self.name == other.name

    def __hash__(self):
        return hash(self.name)


class _BinaryExpression(Expression, abc.ABC):
    def __init__(self, left: Expression, right: Expression):
        super().__init__(left, right)

    @property
    def left(self) -> Expression:
        return self.args[0]

    @property
    def right(self) -> Expression:
        return self.args[1]

    def add_variable(self, name: str) -> Expression:
        return Sum(Variable(name), self)

    def multiply_variable(self, name: str) -> Expression:
        return Product(Variable(name), self)

    def multiply_expr(self, e: Expression) -> Expression:
        # no distribution and no flattening: the grouping is kept as written
        _check_expression(e)

        if e.is_zero:
            return Constant(0)
        if e.is_one:
            return self

        return Product(self, e)


class Sum(_BinaryExpression):
    """``left + right``.

    Two sums are equal when they render to the same string, which makes
    equality insensitive to how the terms are grouped but sensitive to which
    merge rules fired while the sums were built.
    """

    def add_expr(self, e: Expression) -> Expression:
        _check_expression(e)

        if e.is_zero:
            return self

        two = Constant(2)

        if e == self:
            return Sum(self.left.multiply_expr(two), self.right.multiply_expr(two))
        if e == self.left:
            return Sum(self.left.multiply_expr(two), self.right)
        if e == self.right:
            return Sum(self.left, self.right.multiply_expr(two))

        return Sum(self, e)

    def add_constant(self, num: float) -> Expression:
        constant = _constant_operand(num)

        if constant.is_zero:
            return self
        if self.left == constant:
            return Sum(self.left.add_constant(constant.value), self.right)
        if self.right == constant:
            return Sum(self.left, self.right.add_constant(constant.value))

        return Sum(constant, self)

    def append_coefficient(self, num: float) -> Expression:
        constant = _constant_operand(num)

        if constant.is_zero:
            return Constant(0)
        if constant.is_one:
            return self

        return self.left.append_coefficient(constant.value).add_expr(
            self.right.append_coefficient(constant.value)
        )

    def to_str(self) -> str:
        return f"{self.left.to_str()} + {self.right.to_str()}"


class Product(_BinaryExpression):
    """``left * right``. Grouping matters for equality: ``x*(2*y) != (x*2)*y``."""

    def add_expr(self, e: Expression) -> Expression:
        _check_expression(e)

        if e.is_zero:
            return self
        if e == self:
            return self.multiply_expr(Constant(2))

        return Sum(self, e)

    def add_constant(self, num: float) -> Expression:
        constant = _constant_operand(num)

        if constant.is_zero:
            return self

        return Sum(constant, self)

    def append_coefficient(self, num: float) -> Expression:
        constant = _constant_operand(num)

        if constant.is_zero:
            return Constant(0)
        if constant.is_one:
            return self

        return Product(constant, self)

    def to_str(self) -> str:
        return f"({self.left.to_str()})*({self.right.to_str()})"


def check_parens(txt: str) -> None:
    parens_level = 0
    for i, char in enumerate(txt):
        if char == "(":
            parens_level += 1
        elif char == ")":
            parens_level -= 1

        if parens_level < 0:
            raise ParsingException(f"Unbalanced ')' at position {i} in {txt!r}.")

    if parens_level != 0:
        raise ParsingException(f"Unclosed '(' in {txt!r}.")


def parens_aware_split(txt: str, split_char: str) -> list[str]:
    groups = [""]
    parens_level = 0
    for char in txt:
        if parens_level == 0 and char == split_char:
            groups.append("")
            continue

        groups[-1] += char

        if char == "(":
            parens_level += 1
        elif char == ")":
            parens_level -= 1

    return groups


def has_top_level_parens(txt: str) -> bool:
    if not txt.startswith("(") or not txt.endswith(")"):
        return False

    parens_level = 0
    for char in txt[:-1]:  # the last char always closes the outermost pair
        if char == "(":
            parens_level += 1
        elif char == ")":
            parens_level -= 1

        if parens_level == 0:
            # "(a)*(b)": the first pair closes early, so it isn't wrapping everything
            return False

    return True


def remove_top_level_parens(txt: str) -> str:
    txt = txt.strip()

    while has_top_level_parens(txt):
        txt = txt[1:-1].strip()

    return txt


def _parse_atom(expr: str) -> Expression:
    if _NUMBER_PATTERN.fullmatch(expr):
        value = float(expr)
        if math.isinf(value):
            raise ParsingException(f"Number {expr!r} is too large.")
        return Constant(value)

    if expr.isascii() and expr.isalpha():
        return Variable(expr)

    raise ParsingException(f"Can't parse {expr!r} as a number or a variable.")


def _assemble_sum(terms: list[Expression]) -> Expression:
    # Try every grouping of each run of terms and keep one that renders like
    # the run itself, so constants kept apart while assembling stay apart.
    # Without such a grouping, fall back to folding from the right.
    @functools.cache
    def assemble(start: int, stop: int) -> Expression:
        if stop - start == 1:
            return terms[start]

        target = " + ".join(term.to_str() for term in terms[start:stop])
        fallback = None
        for split in range(start + 1, stop):
            candidate = assemble(start, split).add_expr(assemble(split, stop))
            if candidate.to_str() == target:
                return candidate
            if fallback is None:
                fallback = candidate

        return fallback

    return assemble(0, len(terms))


def _parse(expr: str) -> Expression:
    expr = remove_top_level_parens(expr)

    if not expr:
        raise ParsingException("Can't parse an empty expression.")

    terms = parens_aware_split(expr, "+")
    if len(terms) > 1:
        return _assemble_sum([_parse(term) for term in terms])

    factors = parens_aware_split(expr, "*")
    if len(factors) > 1:
        return functools.reduce(
            lambda acc, factor: acc.multiply_expr(factor),
            [_parse(factor) for factor in factors]
        )

    return _parse_atom(expr)


def parse(text: str) -> Expression:
    """Parse ``text`` into an expression.

    Every node is built through the combinators, so parsed trees are
    simplified by the same rules as hand-built ones. Products are combined
    left to right. For sums, each run of terms is regrouped until some
    grouping of :meth:`Expression.add_expr` calls renders like the run, which
    gives ``parse(str(e)) == e`` for trees assembled through the combinators.
    Input that no grouping reproduces, such as ``3 + 4``, is folded from the
    right and simplified.
    """
    if not isinstance(text, str):
        raise ParsingException(f"Can only parse strings, got {type(text).__name__}.")

    check_parens(text)

    try:
        expr = _parse(text)
    except (InvalidConstantException, InvalidVariableException) as e:
        raise ParsingException(f"Could not parse expression {text!r}: {e}") from e

    logger.debug("Parsed %r into %s", text, expr)
    return expr
