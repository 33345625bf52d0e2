"""Status effect catalog for combatants."""

from dataclasses import dataclass
from enum import Enum


class StatusCategory(Enum):
    """Categories of status effects."""

    PHYSICAL = "physical"
    MOVEMENT = "movement"
    TACTICAL = "tactical"
    MENTAL = "mental"


@dataclass(frozen=True)
class StatusEffect:
    """A named ongoing condition a combatant can carry."""

    key: str
    name: str
    category: StatusCategory
    description: str
    icon: str = ""
    damage_per_round: int = 0  # Applied at each round boundary
    damage_type: str = "physical"

    @property
    def is_damage_over_time(self) -> bool:
        return self.damage_per_round > 0


STANDARD_EFFECTS: dict[str, StatusEffect] = {
    "stunned": StatusEffect(
        key="stunned",
        name="Stunned",
        category=StatusCategory.PHYSICAL,
        description="Reeling from a blow. Loses the next action.",
        icon="⚡",
    ),
    "prone": StatusEffect(
        key="prone",
        name="Prone",
        category=StatusCategory.MOVEMENT,
        description="Lying on the ground. Must spend movement to stand.",
        icon="⬇",
    ),
    "burning": StatusEffect(
        key="burning",
        name="Burning",
        category=StatusCategory.PHYSICAL,
        description="On fire. Takes fire damage at the end of every round.",
        icon="🔥",
        damage_per_round=5,
        damage_type="fire",
    ),
    "frozen": StatusEffect(
        key="frozen",
        name="Frozen",
        category=StatusCategory.PHYSICAL,
        description="Encased in ice. Cannot move until freed.",
        icon="❄",
    ),
    "invisible": StatusEffect(
        key="invisible",
        name="Invisible",
        category=StatusCategory.TACTICAL,
        description="Cannot be seen. Attacks against it are made at disadvantage.",
        icon="👁",
    ),
    "cover": StatusEffect(
        key="cover",
        name="In Cover",
        category=StatusCategory.TACTICAL,
        description="Behind solid cover. Ranged attacks against it are harder.",
        icon="🛡",
    ),
    "flying": StatusEffect(
        key="flying",
        name="Flying",
        category=StatusCategory.MOVEMENT,
        description="Airborne. Out of reach of ground-bound melee.",
        icon="🪽",
    ),
    "concentrating": StatusEffect(
        key="concentrating",
        name="Concentrating",
        category=StatusCategory.MENTAL,
        description="Maintaining an ongoing effect. Damage may break concentration.",
        icon="🎯",
    ),
}


def normalize_tag(tag: str) -> str:
    """Canonical form of a status tag (" Flat-Footed" -> "flat_footed")."""
    return tag.strip().lower().replace(" ", "_").replace("-", "_")


def get_effect(tag: str) -> StatusEffect | None:
    """Look up a standard status effect by tag."""
    return STANDARD_EFFECTS.get(normalize_tag(tag))


def display_name(tag: str) -> str:
    """Display name for a tag, falling back to a title-cased tag."""
    effect = get_effect(tag)
    if effect:
        return effect.name
    return normalize_tag(tag).replace("_", " ").title()


def damage_over_time_table(overrides: dict[str, int] | None = None) -> dict[str, int]:
    """Per-round damage for every damage-over-time tag.

    Args:
        overrides: Tag -> damage entries that replace or extend the catalog.
            A value of 0 disables the tag.

    Returns:
        Mapping of normalized tag to damage per round
    """
    table = {
        key: effect.damage_per_round
        for key, effect in STANDARD_EFFECTS.items()
        if effect.is_damage_over_time
    }
    for tag, amount in (overrides or {}).items():
        table[normalize_tag(tag)] = amount
    return {tag: amount for tag, amount in table.items() if amount > 0}
