"""Combatants and the registry that owns them within one encounter."""

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from .conditions import normalize_tag
from .dice import DiceEngine

logger = logging.getLogger(__name__)


class CombatantType(Enum):
    """Type of combatant."""

    PLAYER = "player"
    ALLY = "ally"
    NPC = "npc"
    ENEMY = "enemy"


class HealthState(Enum):
    """Health band derived from the HP percentage."""

    HEALTHY = "healthy"
    WOUNDED = "wounded"
    INJURED = "injured"
    CRITICAL = "critical"
    DYING = "dying"


@dataclass
class Combatant:
    """A participant in an encounter.

    Fields are mutated only by CombatantRegistry, which keeps
    0 <= current_hp <= max_hp.
    """

    id: str
    name: str
    combatant_type: CombatantType
    max_hp: int
    current_hp: int
    initiative_modifier: int = 0
    initiative: int | None = None
    status_effects: list[str] = field(default_factory=list)

    @property
    def hp_percentage(self) -> float:
        return self.current_hp / self.max_hp * 100

    @property
    def is_conscious(self) -> bool:
        """Check if combatant is conscious."""
        return self.current_hp > 0

    @property
    def health_state(self) -> HealthState:
        """Get the health band for the current HP."""
        percentage = self.hp_percentage
        if percentage > 75:
            return HealthState.HEALTHY
        elif percentage > 50:
            return HealthState.WOUNDED
        elif percentage > 25:
            return HealthState.INJURED
        elif percentage > 0:
            return HealthState.CRITICAL
        else:
            return HealthState.DYING

    def has_status(self, tag: str) -> bool:
        return normalize_tag(tag) in self.status_effects

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.combatant_type.value,
            "max_hp": self.max_hp,
            "current_hp": self.current_hp,
            "initiative": self.initiative,
            "initiative_modifier": self.initiative_modifier,
            "status_effects": list(self.status_effects),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Combatant":
        """Create from dictionary data, clamping HP into range.

        Raises:
            ValueError: If required fields are missing or max HP is not positive
        """
        try:
            max_hp = int(data["max_hp"])
            combatant_id = str(data["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid combatant record: {data!r}") from e

        if max_hp <= 0:
            raise ValueError(f"max_hp must be positive, got {max_hp}")

        current_hp = int(data.get("current_hp", max_hp))
        initiative = data.get("initiative")

        statuses: list[str] = []
        for tag in data.get("status_effects", []):
            tag = normalize_tag(tag)
            if tag not in statuses:
                statuses.append(tag)

        return cls(
            id=combatant_id,
            name=data.get("name", "Unknown"),
            combatant_type=CombatantType(data.get("type", CombatantType.NPC.value)),
            max_hp=max_hp,
            current_hp=max(0, min(current_hp, max_hp)),
            initiative_modifier=int(data.get("initiative_modifier", 0)),
            initiative=int(initiative) if initiative is not None else None,
            status_effects=statuses,
        )


class CombatantRegistry:
    """Owns the combatants of one encounter and guards their invariants.

    Lookups by an unknown id are silent no-ops that return None, since they
    usually come from stale references (a double click on a removed row).
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._combatants: dict[str, Combatant] = {}

    def __len__(self) -> int:
        return len(self._combatants)

    def __contains__(self, combatant_id: object) -> bool:
        return combatant_id in self._combatants

    def __iter__(self) -> Iterator[Combatant]:
        return iter(list(self._combatants.values()))

    @staticmethod
    def _new_id() -> str:
        return f"combatant-{uuid.uuid4().hex[:12]}"

    def add(
        self,
        name: str,
        combatant_type: CombatantType | str = CombatantType.NPC,
        max_hp: int = 50,
        initiative_modifier: int = 0,
    ) -> str:
        """Add a combatant at full HP with no initiative.

        Args:
            name: Display name
            combatant_type: player, ally, npc or enemy
            max_hp: Maximum (and starting) HP
            initiative_modifier: Added to every initiative roll

        Returns:
            Fresh combatant id, never reused within the registry

        Raises:
            ValueError: If max_hp is not positive or the type is unknown
        """
        if max_hp <= 0:
            raise ValueError(f"max_hp must be positive, got {max_hp}")

        combatant_id = self._new_id()
        while combatant_id in self._combatants:
            combatant_id = self._new_id()

        combatant = Combatant(
            id=combatant_id,
            name=name or "Unknown",
            combatant_type=CombatantType(combatant_type),
            max_hp=max_hp,
            current_hp=max_hp,
            initiative_modifier=initiative_modifier,
        )
        self._combatants[combatant_id] = combatant
        logger.debug("Added combatant %s (%s)", combatant.name, combatant_id)
        return combatant_id

    def load(self, combatants: list[Combatant]) -> None:
        """Replace the registry contents with existing records, in order.

        Raises:
            ValueError: If two records share an id
        """
        loaded: dict[str, Combatant] = {}
        for combatant in combatants:
            if combatant.id in loaded:
                raise ValueError(f"Duplicate combatant id: {combatant.id}")
            loaded[combatant.id] = combatant
        self._combatants = loaded

    def remove(self, combatant_id: str) -> Combatant | None:
        """Remove a combatant. Unknown ids are ignored.

        Returns:
            The removed combatant, or None
        """
        combatant = self._combatants.pop(combatant_id, None)
        if combatant:
            logger.debug("Removed combatant %s (%s)", combatant.name, combatant_id)
        return combatant

    def clear(self) -> None:
        self._combatants.clear()

    def get(self, combatant_id: str | None) -> Combatant | None:
        if combatant_id is None:
            return None
        return self._combatants.get(combatant_id)

    @property
    def combatants(self) -> list[Combatant]:
        """All combatants in insertion order."""
        return list(self._combatants.values())

    def by_type(self, combatant_type: CombatantType | str) -> list[Combatant]:
        """Get all combatants of a specific type."""
        combatant_type = CombatantType(combatant_type)
        return [c for c in self._combatants.values() if c.combatant_type == combatant_type]

    def apply_damage(self, combatant_id: str, amount: int) -> int | None:
        """Reduce HP, never below zero.

        Args:
            combatant_id: Target id
            amount: Non-negative damage

        Returns:
            The new current HP, or None for an unknown id

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Damage must be non-negative, got {amount}")

        combatant = self._combatants.get(combatant_id)
        if not combatant:
            return None

        combatant.current_hp = max(0, combatant.current_hp - amount)
        return combatant.current_hp

    def heal(self, combatant_id: str, amount: int) -> int | None:
        """Restore HP, never above the maximum.

        Args:
            combatant_id: Target id
            amount: Non-negative healing

        Returns:
            HP actually restored (may be less than requested), or None for an
            unknown id

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Healing must be non-negative, got {amount}")

        combatant = self._combatants.get(combatant_id)
        if not combatant:
            return None

        old_hp = combatant.current_hp
        combatant.current_hp = min(combatant.max_hp, combatant.current_hp + amount)
        return combatant.current_hp - old_hp

    def set_hp(self, combatant_id: str, value: int) -> int | None:
        """Set HP directly, clamped to [0, max_hp].

        Returns:
            The new current HP, or None for an unknown id
        """
        combatant = self._combatants.get(combatant_id)
        if not combatant:
            return None

        combatant.current_hp = max(0, min(value, combatant.max_hp))
        return combatant.current_hp

    def add_status(self, combatant_id: str, tag: str) -> bool:
        """Attach a status tag.

        Returns:
            True if the tag was added, False if already present or id unknown
        """
        combatant = self._combatants.get(combatant_id)
        tag = normalize_tag(tag)
        if not combatant or not tag or tag in combatant.status_effects:
            return False

        combatant.status_effects.append(tag)
        return True

    def remove_status(self, combatant_id: str, tag: str) -> bool:
        """Detach a status tag.

        Returns:
            True if the tag was removed, False if absent or id unknown
        """
        combatant = self._combatants.get(combatant_id)
        tag = normalize_tag(tag)
        if not combatant or tag not in combatant.status_effects:
            return False

        combatant.status_effects.remove(tag)
        return True

    def rename(self, combatant_id: str, name: str) -> bool:
        combatant = self._combatants.get(combatant_id)
        if not combatant or not name or name == combatant.name:
            return False
        combatant.name = name
        return True

    def roll_initiative(self, combatant_id: str, dice: DiceEngine) -> int | None:
        """Roll 1d10 plus the combatant's modifier and store it.

        Returns:
            The new initiative, or None for an unknown id
        """
        combatant = self._combatants.get(combatant_id)
        if not combatant:
            return None

        combatant.initiative = dice.roll_die() + combatant.initiative_modifier
        return combatant.initiative

    def clear_initiative(self) -> None:
        for combatant in self._combatants.values():
            combatant.initiative = None
