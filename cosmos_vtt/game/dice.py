"""Dice rolling engine for the Cosmos Engine 2d10 resolution system."""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..config import DiceConfig

logger = logging.getLogger(__name__)


class RollMode(Enum):
    """How many dice are drawn and which two are kept."""

    NORMAL = "normal"
    ADVANTAGE = "advantage"  # 3d10 keep highest 2
    DISADVANTAGE = "disadvantage"  # 3d10 keep lowest 2

    @classmethod
    def parse(cls, value: "RollMode | str") -> "RollMode":
        """Accept a RollMode or its name/value ("adv" and "dis" allowed).

        Raises:
            ValueError: If the mode is unknown
        """
        if isinstance(value, RollMode):
            return value

        key = str(value).strip().lower()
        aliases = {"adv": "advantage", "dis": "disadvantage"}
        key = aliases.get(key, key)
        for mode in cls:
            if mode.value == key:
                return mode

        raise ValueError(f"Unknown roll mode: {value}")


class SuccessDegree(Enum):
    """Qualitative grade of a roll relative to its target number."""

    LEGENDARY = "legendary"
    CRITICAL = "critical"
    SOLID = "solid"
    MARGINAL = "marginal"
    MARGINAL_FAILURE = "marginal-failure"
    CLEAR_FAILURE = "clear-failure"
    CRITICAL_FAILURE = "critical-failure"
    CATASTROPHIC = "catastrophic"

    @property
    def label(self) -> str:
        """Display label for the degree."""
        return _DEGREE_LABELS[self]

    @property
    def is_success(self) -> bool:
        return self in (
            SuccessDegree.LEGENDARY,
            SuccessDegree.CRITICAL,
            SuccessDegree.SOLID,
            SuccessDegree.MARGINAL,
        )


_DEGREE_LABELS = {
    SuccessDegree.LEGENDARY: "Legendary Success",
    SuccessDegree.CRITICAL: "Critical Success",
    SuccessDegree.SOLID: "Solid Success",
    SuccessDegree.MARGINAL: "Marginal Success",
    SuccessDegree.MARGINAL_FAILURE: "Marginal Failure",
    SuccessDegree.CLEAR_FAILURE: "Clear Failure",
    SuccessDegree.CRITICAL_FAILURE: "Critical Failure",
    SuccessDegree.CATASTROPHIC: "Catastrophic Failure",
}


def classify_degree(margin: int, success: bool) -> SuccessDegree:
    """Grade a roll by its margin over (or under) the target number.

    Args:
        margin: Final total minus target number
        success: Whether the roll met the target

    Returns:
        The SuccessDegree for the margin
    """
    if success:
        if margin >= 10:
            return SuccessDegree.LEGENDARY
        elif margin >= 6:
            return SuccessDegree.CRITICAL
        elif margin >= 3:
            return SuccessDegree.SOLID
        return SuccessDegree.MARGINAL

    if margin <= -10:
        return SuccessDegree.CATASTROPHIC
    elif margin <= -6:
        return SuccessDegree.CRITICAL_FAILURE
    elif margin <= -3:
        return SuccessDegree.CLEAR_FAILURE
    return SuccessDegree.MARGINAL_FAILURE


@dataclass(frozen=True)
class DiceRollResult:
    """Immutable record of one resolution roll."""

    dice: tuple[int, ...]
    kept: tuple[int, ...]
    modifier: int
    natural_total: int
    total: int
    target_number: int
    success: bool
    margin: int
    degree: SuccessDegree
    is_critical: bool = False
    is_fumble: bool = False
    mode: RollMode = RollMode.NORMAL
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __str__(self) -> str:
        """Human-readable representation of the roll."""
        parts = []

        if len(self.dice) != len(self.kept):
            all_dice = f"[{', '.join(str(d) for d in self.dice)}]"
            kept_dice = f"kept [{', '.join(str(d) for d in self.kept)}]"
            parts.append(f"{all_dice} {kept_dice}")
        else:
            parts.append(f"[{', '.join(str(d) for d in self.kept)}]")

        if self.modifier != 0:
            sign = "+" if self.modifier > 0 else ""
            parts.append(f"{sign}{self.modifier}")

        parts.append(f"= {self.total} vs {self.target_number}")

        sign = "+" if self.margin >= 0 else ""
        parts.append(f"({sign}{self.margin}, {self.degree.label})")

        if self.is_critical:
            parts.append("(CRITICAL!)")
        elif self.is_fumble:
            parts.append("(Fumble)")

        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to plain data for rendering or serialization."""
        return {
            "dice": list(self.dice),
            "kept": list(self.kept),
            "modifier": self.modifier,
            "natural_total": self.natural_total,
            "total": self.total,
            "target_number": self.target_number,
            "success": self.success,
            "margin": self.margin,
            "degree": self.degree.value,
            "is_critical": self.is_critical,
            "is_fumble": self.is_fumble,
            "mode": self.mode.value,
            "timestamp": self.timestamp.isoformat(),
        }


class DiceEngine:
    """Rolls 2d10 resolution checks with advantage and disadvantage."""

    def __init__(
        self,
        rng: random.Random | None = None,
        config: DiceConfig | None = None,
    ):
        """Initialize the dice engine.

        Args:
            rng: Random number generator instance. Uses default if not provided.
            config: Dice settings. Uses defaults if not provided.
        """
        self.rng = rng or random.Random()
        self.config = config or DiceConfig()
        self._history: list[DiceRollResult] = []

    def seed(self, seed: int) -> None:
        """Seed the random number generator for reproducible rolls.

        Args:
            seed: Seed value
        """
        self.rng.seed(seed)

    def roll_die(self, sides: int | None = None) -> int:
        """Roll a single die (a d10 unless told otherwise)."""
        return self.rng.randint(1, sides or self.config.sides)

    def roll_dice(self, count: int, sides: int | None = None) -> list[int]:
        """Roll several dice of the same size, in draw order."""
        return [self.roll_die(sides) for _ in range(count)]

    def evaluate(
        self,
        dice: list[int] | tuple[int, ...],
        modifier: int = 0,
        target_number: int | None = None,
        mode: RollMode | str = RollMode.NORMAL,
    ) -> DiceRollResult:
        """Grade already-rolled dice faces.

        Args:
            dice: Raw faces in draw order (2 for normal, 3 otherwise)
            modifier: Signed modifier added to the kept dice
            target_number: Number to meet or beat. Defaults to config value.
            mode: Roll mode deciding which dice are kept

        Returns:
            DiceRollResult with full roll details

        Raises:
            ValueError: If the number of faces does not fit the mode
        """
        mode = RollMode.parse(mode)
        if target_number is None:
            target_number = self.config.default_target_number

        keep = self.config.dice_count
        expected = keep if mode == RollMode.NORMAL else keep + 1
        if len(dice) != expected:
            raise ValueError(f"{mode.value} roll needs {expected} dice, got {len(dice)}")

        if mode == RollMode.ADVANTAGE:
            kept = sorted(dice, reverse=True)[:keep]
        elif mode == RollMode.DISADVANTAGE:
            kept = sorted(dice)[:keep]
        else:
            kept = list(dice)

        natural_total = sum(kept)
        total = natural_total + modifier
        success = total >= target_number
        margin = total - target_number

        return DiceRollResult(
            dice=tuple(dice),
            kept=tuple(kept),
            modifier=modifier,
            natural_total=natural_total,
            total=total,
            target_number=target_number,
            success=success,
            margin=margin,
            degree=classify_degree(margin, success),
            is_critical=natural_total == self.config.critical_success,
            is_fumble=natural_total == self.config.critical_failure,
            mode=mode,
        )

    def roll(
        self,
        modifier: int = 0,
        target_number: int | None = None,
        mode: RollMode | str = RollMode.NORMAL,
    ) -> DiceRollResult:
        """Roll a resolution check and record it in the history.

        Args:
            modifier: Signed modifier added to the kept dice
            target_number: Number to meet or beat. Defaults to config value.
            mode: Normal, advantage or disadvantage

        Returns:
            DiceRollResult with full roll details
        """
        mode = RollMode.parse(mode)
        count = self.config.dice_count if mode == RollMode.NORMAL else self.config.dice_count + 1
        result = self.evaluate(self.roll_dice(count), modifier, target_number, mode)

        logger.debug("Rolled %s", result)
        self._remember(result)
        return result

    def quick_roll(self, modifier: int = 0) -> DiceRollResult:
        """Normal roll against the default target number."""
        return self.roll(modifier)

    def _remember(self, result: DiceRollResult) -> None:
        self._history.insert(0, result)
        del self._history[self.config.max_history :]

    @property
    def history(self) -> list[DiceRollResult]:
        """Past rolls, newest first."""
        return list(self._history)

    @property
    def last_roll(self) -> DiceRollResult | None:
        return self._history[0] if self._history else None

    def clear_history(self) -> None:
        self._history.clear()
