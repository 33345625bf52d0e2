"""Scale tiers and damage conversion between them.

Damage dealt by a lower-scale weapon shrinks against a higher-scale target
and grows against a lower-scale one, by the ratio of the two tiers'
multipliers.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class Scale(Enum):
    """Power tier of an entity."""

    PERSONAL = "personal"
    VEHICLE = "vehicle"
    STARSHIP = "starship"
    CAPITAL = "capital"

    @property
    def multiplier(self) -> int:
        """Damage multiplier of this tier."""
        return _MULTIPLIERS[self]

    @property
    def display_name(self) -> str:
        return self.value.title()

    @classmethod
    def parse(cls, value: "Scale | str") -> "Scale":
        """Accept a Scale or a case-insensitive scale name.

        Raises:
            ValueError: If the name is not one of the four tiers
        """
        if isinstance(value, Scale):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown scale: {value}") from None

    def __lt__(self, other: "Scale") -> bool:
        if not isinstance(other, Scale):
            return NotImplemented
        return self.multiplier < other.multiplier

    def __le__(self, other: "Scale") -> bool:
        if not isinstance(other, Scale):
            return NotImplemented
        return self.multiplier <= other.multiplier


_MULTIPLIERS = {
    Scale.PERSONAL: 1,
    Scale.VEHICLE: 10,
    Scale.STARSHIP: 100,
    Scale.CAPITAL: 1000,
}


@dataclass(frozen=True)
class ScaleInfo:
    """Reference data for a scale tier."""

    scale: Scale
    examples: tuple[str, ...]
    damage_range: str
    hp_range: str


SCALE_INFO: dict[Scale, ScaleInfo] = {
    Scale.PERSONAL: ScaleInfo(
        scale=Scale.PERSONAL,
        examples=("Humans", "Robots", "Small creatures"),
        damage_range="1-20",
        hp_range="10-200",
    ),
    Scale.VEHICLE: ScaleInfo(
        scale=Scale.VEHICLE,
        examples=("Cars", "Motorcycles", "Small mechs"),
        damage_range="10-200",
        hp_range="20-500",
    ),
    Scale.STARSHIP: ScaleInfo(
        scale=Scale.STARSHIP,
        examples=("Fighters", "Transports", "Corvettes"),
        damage_range="100-2000",
        hp_range="100-5000",
    ),
    Scale.CAPITAL: ScaleInfo(
        scale=Scale.CAPITAL,
        examples=("Cruisers", "Carriers", "Stations"),
        damage_range="1000-20000",
        hp_range="1000-50000",
    ),
}

# Keyword -> scale, checked in order against the lower-cased entity type
_SCALE_SUGGESTIONS = (
    ("person", Scale.PERSONAL),
    ("human", Scale.PERSONAL),
    ("robot", Scale.PERSONAL),
    ("car", Scale.VEHICLE),
    ("tank", Scale.VEHICLE),
    ("mech", Scale.VEHICLE),
    ("fighter", Scale.STARSHIP),
    ("shuttle", Scale.STARSHIP),
    ("transport", Scale.STARSHIP),
    ("cruiser", Scale.CAPITAL),
    ("battleship", Scale.CAPITAL),
    ("station", Scale.CAPITAL),
)


def suggest_scale(entity_type: str) -> Scale:
    """Guess the scale of an entity from a free-text type.

    Args:
        entity_type: Description such as "light tank" or "orbital station"

    Returns:
        The first matching scale, Personal when nothing matches
    """
    lowered = entity_type.lower()
    for keyword, scale in _SCALE_SUGGESTIONS:
        if keyword in lowered:
            return scale
    return Scale.PERSONAL


class ScaleConverter:
    """Pure conversion of damage quantities between scale tiers."""

    def multiplier(self, from_scale: Scale | str, to_scale: Scale | str) -> float:
        """Ratio applied to damage going from one scale to another.

        Args:
            from_scale: Scale of the damage source
            to_scale: Scale of the target

        Returns:
            Multiplier; 1 for equal scales, below 1 when attacking upward
        """
        from_scale = Scale.parse(from_scale)
        to_scale = Scale.parse(to_scale)
        if from_scale == to_scale:
            return 1
        return from_scale.multiplier / to_scale.multiplier

    def convert(self, amount: float, from_scale: Scale | str, to_scale: Scale | str) -> float:
        """Convert a damage amount from one scale to another.

        Args:
            amount: Non-negative damage at the source scale
            from_scale: Scale of the damage source
            to_scale: Scale of the target

        Returns:
            Equivalent damage at the target scale, rounded to one decimal place

        Raises:
            ValueError: If amount is negative or a scale is unknown
        """
        if amount < 0:
            raise ValueError(f"Damage amount must be non-negative, got {amount}")

        from_scale = Scale.parse(from_scale)
        to_scale = Scale.parse(to_scale)
        if from_scale == to_scale:
            return float(amount)

        # Halves round up
        converted = math.floor(amount * from_scale.multiplier / to_scale.multiplier * 10 + 0.5) / 10
        logger.debug(
            "Converted %s %s damage to %s %s",
            amount, from_scale.value, converted, to_scale.value,
        )
        return converted

    def describe_effect(self, from_scale: Scale | str, to_scale: Scale | str) -> str:
        """Qualitative label for how a scale gap changes damage."""
        multiplier = self.multiplier(from_scale, to_scale)
        if multiplier >= 100:
            return "apocalyptic"
        elif multiplier >= 10:
            return "catastrophic"
        elif multiplier > 1:
            return "devastating"
        elif multiplier <= 0.01:
            return "negligible"
        elif multiplier <= 0.1:
            return "reduced"
        elif multiplier < 1:
            return "minimal"
        return "normal"

    def comparison_chart(self) -> dict[tuple[Scale, Scale], float]:
        """Multiplier for every (from, to) pair of scales."""
        return {
            (from_scale, to_scale): self.multiplier(from_scale, to_scale)
            for from_scale in Scale
            for to_scale in Scale
        }
