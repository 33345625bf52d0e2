"""Safe dice and attribute formula language for macros.

Formulas are parsed and evaluated by a small recursive-descent interpreter,
never by the host language. Supported syntax:

    2d10 + @coordination + floor(@combat / 2) - 1
    3d10kh2 + max(@agility, @reflexes)

Integers, dice terms (``NdX``, ``NdXkhK``, ``NdXklK``), ``@attribute``
references, ``+ - * /``, unary minus, parentheses and the functions
``floor ceil round min max abs``. Division is true division; a fractional
final total is floored.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable

from .dice import DiceEngine

logger = logging.getLogger(__name__)

MAX_FORMULA_LENGTH = 500
MAX_DICE_COUNT = 100
MAX_DICE_SIDES = 1000
MAX_NESTING = 32
MAX_NUMBER_DIGITS = 15


class FormulaError(ValueError):
    """A formula could not be parsed or evaluated."""


TOKEN_PATTERN = re.compile(
    r"\s*(?:"
    r"(?P<dice>(?P<count>\d*)[dD](?P<sides>\d+)(?:(?P<keep>[kK][hHlL])(?P<keep_count>\d+))?)"
    r"|(?P<number>\d+)"
    r"|(?P<attr>@[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<name>[A-Za-z_]+)"
    r"|(?P<op>[-+*/(),])"
    r")"
)

FUNCTIONS: dict[str, Callable[..., float]] = {
    "floor": math.floor,
    "ceil": math.ceil,
    "round": lambda value: math.floor(value + 0.5),
    "min": min,
    "max": max,
    "abs": abs,
}


@dataclass
class Token:
    """A lexical token of a formula."""

    kind: str
    text: str
    match: re.Match | None = None


@dataclass
class DiceTermResult:
    """Dice rolled for one dice term of a formula."""

    notation: str
    dice: list[int]
    kept: list[int]

    @property
    def total(self) -> int:
        return sum(self.kept)

    def __str__(self) -> str:
        if len(self.dice) != len(self.kept):
            return f"[{', '.join(str(d) for d in self.dice)} kept {'+'.join(str(d) for d in self.kept)}]"
        return f"[{'+'.join(str(d) for d in self.kept)}]"


@dataclass
class FormulaResult:
    """Result of evaluating a formula."""

    formula: str
    total: int
    rolls: list[DiceTermResult] = field(default_factory=list)
    breakdown: str = ""

    def __str__(self) -> str:
        return f"{self.formula}: {self.breakdown} = {self.total}"


def tokenize(formula: str) -> list[Token]:
    """Split a formula into tokens.

    Raises:
        FormulaError: On characters outside the grammar
    """
    tokens = []
    position = 0
    formula = formula.rstrip()

    while position < len(formula):
        match = TOKEN_PATTERN.match(formula, position)
        if not match or match.end() == position:
            raise FormulaError(f"Unexpected character at position {position}: {formula[position:]!r}")

        kind = match.lastgroup
        # lastgroup names the innermost group for dice terms
        if match.group("dice"):
            kind = "dice"
        tokens.append(Token(kind=kind, text=match.group(kind), match=match))
        position = match.end()

    return tokens


class _Parser:
    """Recursive-descent evaluator over a token list."""

    def __init__(self, tokens: list[Token], dice: DiceEngine, attributes: dict[str, int]):
        self.tokens = tokens
        self.dice = dice
        self.attributes = attributes
        self.position = 0
        self.depth = 0
        self.rolls: list[DiceTermResult] = []
        self.rendered: list[str] = []

    def peek(self) -> Token | None:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def advance(self) -> Token:
        token = self.peek()
        if token is None:
            raise FormulaError("Unexpected end of formula")
        self.position += 1
        return token

    def expect(self, text: str) -> None:
        token = self.advance()
        if token.text != text:
            raise FormulaError(f"Expected {text!r}, got {token.text!r}")
        self.rendered.append(text)

    def parse(self) -> float:
        value = self.expression()
        if self.peek() is not None:
            raise FormulaError(f"Unexpected token {self.peek().text!r}")
        return value

    def expression(self) -> float:
        value = self.term()
        while self.peek() and self.peek().text in ("+", "-"):
            operator = self.advance().text
            self.rendered.append(operator)
            right = self.term()
            value = value + right if operator == "+" else value - right
        return value

    def term(self) -> float:
        value = self.factor()
        while self.peek() and self.peek().text in ("*", "/"):
            operator = self.advance().text
            self.rendered.append(operator)
            right = self.factor()
            if operator == "*":
                value = value * right
            elif right == 0:
                raise FormulaError("Division by zero")
            else:
                value = value / right
        return value

    def factor(self) -> float:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise FormulaError("Formula is nested too deeply")
        try:
            return self._factor()
        finally:
            self.depth -= 1

    def _factor(self) -> float:
        token = self.advance()

        if token.text in ("-", "+"):
            self.rendered.append(token.text)
            value = self.factor()
            return -value if token.text == "-" else value

        if token.text == "(":
            self.rendered.append("(")
            value = self.expression()
            self.expect(")")
            return value

        if token.kind == "number":
            if len(token.text) > MAX_NUMBER_DIGITS:
                raise FormulaError(f"Number longer than {MAX_NUMBER_DIGITS} digits: {token.text[:20]}...")
            self.rendered.append(token.text)
            return int(token.text)

        if token.kind == "dice":
            return self.roll_term(token)

        if token.kind == "attr":
            name = token.text[1:].lower()
            if name not in self.attributes:
                raise FormulaError(f"Unknown attribute: @{name}")
            value = self.attributes[name]
            self.rendered.append(str(value))
            return value

        if token.kind == "name":
            return self.call(token.text.lower())

        raise FormulaError(f"Unexpected token {token.text!r}")

    def call(self, name: str) -> float:
        function = FUNCTIONS.get(name)
        if function is None:
            raise FormulaError(f"Unknown function: {name}")

        self.rendered.append(name)
        self.expect("(")
        arguments = [self.expression()]
        while self.peek() and self.peek().text == ",":
            self.advance()
            self.rendered.append(",")
            arguments.append(self.expression())
        self.expect(")")

        try:
            return function(*arguments)
        except TypeError as e:
            raise FormulaError(f"Bad arguments for {name}(): {e}") from e

    def roll_term(self, token: Token) -> int:
        match = token.match
        count = int(match.group("count") or 1)
        sides = int(match.group("sides"))

        if not 1 <= count <= MAX_DICE_COUNT:
            raise FormulaError(f"Dice count must be between 1 and {MAX_DICE_COUNT}: {token.text}")
        if not 2 <= sides <= MAX_DICE_SIDES:
            raise FormulaError(f"Dice sides must be between 2 and {MAX_DICE_SIDES}: {token.text}")

        dice = self.dice.roll_dice(count, sides)
        kept = list(dice)

        keep = match.group("keep")
        if keep:
            keep_count = int(match.group("keep_count"))
            if not 1 <= keep_count <= count:
                raise FormulaError(f"Cannot keep {keep_count} of {count} dice: {token.text}")
            kept = sorted(dice, reverse=keep.lower() == "kh")[:keep_count]

        term = DiceTermResult(notation=token.text.lower(), dice=dice, kept=kept)
        self.rolls.append(term)
        self.rendered.append(str(term))
        return term.total


class FormulaEvaluator:
    """Evaluates formulas using a shared dice engine."""

    def __init__(self, dice: DiceEngine | None = None):
        """Initialize the evaluator.

        Args:
            dice: Dice engine to roll with. A fresh one by default.
        """
        self.dice = dice or DiceEngine()

    def evaluate(self, formula: str, attributes: dict[str, int] | None = None) -> FormulaResult:
        """Evaluate a formula.

        Args:
            formula: Formula text
            attributes: Values for ``@name`` references (case-insensitive)

        Returns:
            FormulaResult with total, dice rolled and breakdown

        Raises:
            FormulaError: If the formula is invalid or cannot be evaluated
        """
        if not formula or not formula.strip():
            raise FormulaError("Formula is empty")
        if len(formula) > MAX_FORMULA_LENGTH:
            raise FormulaError(f"Formula longer than {MAX_FORMULA_LENGTH} characters")

        normalized = {name.lower(): value for name, value in (attributes or {}).items()}
        parser = _Parser(tokenize(formula), self.dice, normalized)
        try:
            value = parser.parse()
            total = math.floor(value)
        except OverflowError as e:
            raise FormulaError(f"Formula result is too large: {e}") from e

        result = FormulaResult(
            formula=formula.strip(),
            total=total,
            rolls=parser.rolls,
            breakdown=" ".join(parser.rendered),
        )
        logger.debug("Evaluated %s", result)
        return result


@dataclass
class Macro:
    """A named, reusable formula."""

    name: str
    formula: str
    category: str = "general"
    description: str = ""

    def execute(
        self,
        evaluator: FormulaEvaluator,
        attributes: dict[str, int] | None = None,
    ) -> FormulaResult:
        return evaluator.evaluate(self.formula, attributes)


DEFAULT_MACROS = [
    Macro(
        name="Attack Roll",
        formula="2d10 + @coordination + floor(@combat / 2) + @weapon",
        category="combat",
        description="Standard attack roll with weapon",
    ),
    Macro(
        name="Skill Check",
        formula="2d10 + @attribute + floor(@skill / 2) + @modifier",
        category="skill",
        description="Attribute plus half skill",
    ),
    Macro(
        name="Damage Roll",
        formula="1d10 + @weapon_damage + floor(@margin / 2)",
        category="combat",
        description="Weapon damage plus half the attack margin",
    ),
]
