"""Encounter state and the turn/round combat state machine.

EncounterState is the single owner of an encounter's combatants and log.
Every HP, status or initiative change made by a collaborator goes through
it, so all of them are logged and observers see a consistent sequence.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from ..config import CombatConfig
from .combatants import Combatant, CombatantRegistry, CombatantType
from .conditions import damage_over_time_table, display_name, get_effect
from .dice import DiceEngine
from .scale import Scale, ScaleConverter

logger = logging.getLogger(__name__)


class CombatError(Exception):
    """Illegal use of the combat state machine."""


class EmptyEncounter(CombatError):
    """Combat started with no combatants."""


class AlreadyActive(CombatError):
    """Operation needs combat to be idle, but it is running."""


class CombatNotActive(CombatError):
    """Operation needs combat to be running, but it is idle."""


class CombatState(Enum):
    """Lifecycle state of an encounter."""

    IDLE = "idle"
    ACTIVE = "active"


class LogEntryType(Enum):
    """Kind of combat log entry."""

    SYSTEM = "system"
    ADD = "add"
    REMOVE = "remove"
    EDIT = "edit"
    ROLL = "roll"
    TURN = "turn"
    ROUND = "round"
    DAMAGE = "damage"
    HEAL = "heal"
    STATUS = "status"
    DEATH = "death"
    SCALE = "scale"


@dataclass(frozen=True)
class CombatLogEntry:
    """One line of the append-only combat log."""

    message: str
    entry_type: LogEntryType
    round_number: int
    combatant_id: str | None = None
    amount: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "type": self.entry_type.value,
            "round": self.round_number,
            "combatant_id": self.combatant_id,
            "amount": self.amount,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CombatLogEntry":
        timestamp = data.get("timestamp")
        return cls(
            message=data["message"],
            entry_type=LogEntryType(data.get("type", LogEntryType.SYSTEM.value)),
            round_number=int(data.get("round", 1)),
            combatant_id=data.get("combatant_id"),
            amount=data.get("amount"),
            timestamp=(
                datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc)
            ),
        )


LogObserver = Callable[[CombatLogEntry], None]


def initiative_sort_key(combatant: Combatant) -> tuple[int, int]:
    """Sort key putting higher initiative, then higher modifier, first.

    Used with a stable sort, so complete ties keep insertion order.
    """
    initiative = combatant.initiative if combatant.initiative is not None else 0
    return (-initiative, -combatant.initiative_modifier)


class EncounterState:
    """Manages one encounter: combatants, scale, log and the turn cycle.

    The turn order is captured when combat starts and walked positionally
    afterwards; later stat changes never reshuffle it.
    """

    def __init__(
        self,
        dice: DiceEngine | None = None,
        converter: ScaleConverter | None = None,
        config: CombatConfig | None = None,
        registry: CombatantRegistry | None = None,
    ):
        """Initialize an empty, idle encounter.

        Args:
            dice: Dice engine used for initiative rolls
            converter: Scale converter used for cross-scale damage
            config: Combat settings
            registry: Combatant registry to own. A fresh one by default.
        """
        self.dice = dice or DiceEngine()
        self.converter = converter or ScaleConverter()
        self.config = config or CombatConfig()
        self.registry = registry if registry is not None else CombatantRegistry()

        self.round_number: int = 1
        self.scale: Scale = Scale.parse(self.config.default_scale)
        self.state: CombatState = CombatState.IDLE
        self._log: list[CombatLogEntry] = []
        self._turn_order: list[str] = []
        self._turn_index: int = 0
        self._observers: list[LogObserver] = []
        self._damage_over_time = damage_over_time_table(self.config.damage_over_time)

    @property
    def is_active(self) -> bool:
        return self.state == CombatState.ACTIVE

    @property
    def combatants(self) -> list[Combatant]:
        return self.registry.combatants

    @property
    def log(self) -> list[CombatLogEntry]:
        return list(self._log)

    @property
    def turn_order(self) -> list[str]:
        """Combatant ids in the captured turn order (empty when idle)."""
        return list(self._turn_order)

    @property
    def current_turn_id(self) -> str | None:
        if not self.is_active or not self._turn_order:
            return None
        return self._turn_order[self._turn_index]

    def get_combatant(self, combatant_id: str | None) -> Combatant | None:
        return self.registry.get(combatant_id)

    def get_current_combatant(self) -> Combatant | None:
        """Get the combatant whose turn it is."""
        return self.registry.get(self.current_turn_id)

    def get_combatants_by_type(self, combatant_type: CombatantType | str) -> list[Combatant]:
        return self.registry.by_type(combatant_type)

    def sorted_by_initiative(self) -> list[Combatant]:
        """Combatants by initiative then modifier, ties in insertion order."""
        return sorted(self.registry.combatants, key=initiative_sort_key)

    def initiative_display(self) -> list[dict[str, Any]]:
        """Get initiative order for display.

        Uses the captured turn order during combat, the live sort otherwise.
        """
        if self.is_active:
            ordered = [self.registry.get(cid) for cid in self._turn_order]
        else:
            ordered = self.sorted_by_initiative()

        current_id = self.current_turn_id
        return [
            {
                "id": c.id,
                "name": c.name,
                "initiative": c.initiative,
                "hp": f"{c.current_hp}/{c.max_hp}",
                "health": c.health_state.value,
                "type": c.combatant_type.value,
                "status_effects": list(c.status_effects),
                "is_current": c.id == current_id,
            }
            for c in ordered
            if c is not None
        ]

    def subscribe(self, observer: LogObserver) -> None:
        """Register a callable to receive every new log entry.

        Observers run synchronously inside the mutating call. An observer that
        raises is logged and skipped; the encounter state is not affected.
        """
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: LogObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def log_action(
        self,
        message: str,
        entry_type: LogEntryType = LogEntryType.SYSTEM,
        combatant_id: str | None = None,
        amount: int | None = None,
    ) -> CombatLogEntry:
        """Append an entry to the combat log and notify observers.

        Returns:
            The logged CombatLogEntry
        """
        entry = CombatLogEntry(
            message=message,
            entry_type=entry_type,
            round_number=self.round_number,
            combatant_id=combatant_id,
            amount=amount,
        )
        self._log.append(entry)
        logger.debug("[round %d] %s", self.round_number, message)

        for observer in list(self._observers):
            try:
                observer(entry)
            except Exception:
                logger.exception("Log observer %r failed on: %s", observer, message)

        return entry

    def add_combatant(
        self,
        name: str,
        combatant_type: CombatantType | str = CombatantType.NPC,
        max_hp: int | None = None,
        initiative_modifier: int = 0,
    ) -> str:
        """Add a combatant to the encounter.

        A combatant joining a running combat rolls initiative at once and is
        slotted into the captured order without moving anyone else.

        Returns:
            The new combatant's id
        """
        if max_hp is None:
            max_hp = self.config.default_max_hp

        combatant_id = self.registry.add(name, combatant_type, max_hp, initiative_modifier)
        combatant = self.registry.get(combatant_id)
        self.log_action(f"{combatant.name} joined combat", LogEntryType.ADD, combatant_id)

        if self.is_active:
            self._roll_initiative(combatant_id)
            self._insert_into_turn_order(combatant)

        return combatant_id

    def remove_combatant(self, combatant_id: str) -> Combatant | None:
        """Remove a combatant. Unknown ids are ignored.

        During combat, removing the turn holder passes the turn on, and
        removing the last combatant ends combat.

        Returns:
            The removed combatant, or None
        """
        combatant = self.registry.remove(combatant_id)
        if combatant is None:
            return None

        self.log_action(f"{combatant.name} removed from combat", LogEntryType.REMOVE, combatant_id)

        if self.is_active and combatant_id in self._turn_order:
            position = self._turn_order.index(combatant_id)
            self._turn_order.pop(position)

            if not self._turn_order:
                self._finish("Combat ended: no combatants remain")
            elif position < self._turn_index:
                self._turn_index -= 1
            elif position == self._turn_index:
                if self._turn_index >= len(self._turn_order):
                    self._wrap_round()
                self._begin_turn()

        return combatant

    def rename_combatant(self, combatant_id: str, name: str) -> bool:
        combatant = self.registry.get(combatant_id)
        old_name = combatant.name if combatant else None
        if not self.registry.rename(combatant_id, name):
            return False
        self.log_action(f"{old_name} renamed to {name}", LogEntryType.EDIT, combatant_id)
        return True

    def clear(self) -> None:
        """Remove every combatant and reset the encounter.

        Raises:
            AlreadyActive: If combat is running
        """
        if self.is_active:
            logger.warning("Refusing to clear an encounter during active combat")
            raise AlreadyActive("Cannot clear an encounter during active combat")

        self.registry.clear()
        self._log.clear()
        self.round_number = 1
        self.scale = Scale.parse(self.config.default_scale)
        logger.info("Encounter cleared")

    def apply_damage(
        self,
        combatant_id: str,
        amount: int,
        damage_type: str = "physical",
        source_scale: Scale | str | None = None,
    ) -> int | None:
        """Apply damage to a combatant.

        Args:
            combatant_id: Target id
            amount: Non-negative damage at the source scale
            damage_type: Free-text type used in the log
            source_scale: Scale of the attacker. Damage is converted to the
                encounter's current scale and rounded to whole HP.

        Returns:
            The target's new HP, or None for an unknown id
        """
        if amount < 0:
            raise ValueError(f"Damage must be non-negative, got {amount}")

        combatant = self.registry.get(combatant_id)
        if not combatant:
            return None

        damage = amount
        note = ""
        if source_scale is not None:
            source_scale = Scale.parse(source_scale)
            if source_scale != self.scale:
                converted = self.converter.convert(amount, source_scale, self.scale)
                damage = math.floor(converted + 0.5)
                note = f" ({amount} at {source_scale.display_name} scale)"

        was_conscious = combatant.is_conscious
        new_hp = self.registry.apply_damage(combatant_id, damage)
        self.log_action(
            f"{combatant.name} takes {damage} {damage_type} damage{note}",
            LogEntryType.DAMAGE,
            combatant_id,
            damage,
        )

        if was_conscious and not combatant.is_conscious:
            self.log_action(f"{combatant.name} is dying!", LogEntryType.DEATH, combatant_id)

        return new_hp

    def heal(self, combatant_id: str, amount: int) -> int | None:
        """Heal a combatant, capped at max HP.

        Returns:
            HP actually restored, or None for an unknown id
        """
        combatant = self.registry.get(combatant_id)
        healed = self.registry.heal(combatant_id, amount)
        if healed is None:
            return None

        self.log_action(f"{combatant.name} heals {healed} HP", LogEntryType.HEAL, combatant_id, healed)
        return healed

    def set_hp(self, combatant_id: str, value: int) -> int | None:
        """Manually correct a combatant's HP (clamped).

        Returns:
            The new HP, or None for an unknown id
        """
        combatant = self.registry.get(combatant_id)
        if not combatant:
            return None

        old_hp = combatant.current_hp
        new_hp = self.registry.set_hp(combatant_id, value)
        change = new_hp - old_hp

        if change > 0:
            self.log_action(f"{combatant.name} heals {change} HP", LogEntryType.HEAL, combatant_id, change)
        elif change < 0:
            self.log_action(
                f"{combatant.name} takes {-change} damage", LogEntryType.DAMAGE, combatant_id, -change
            )
            if old_hp > 0 and new_hp == 0:
                self.log_action(f"{combatant.name} is dying!", LogEntryType.DEATH, combatant_id)

        return new_hp

    def add_status(self, combatant_id: str, tag: str) -> bool:
        """Attach a status effect. Re-adding a present tag does nothing."""
        combatant = self.registry.get(combatant_id)
        if not self.registry.add_status(combatant_id, tag):
            return False

        self.log_action(f"{combatant.name} is {display_name(tag)}", LogEntryType.STATUS, combatant_id)
        return True

    def remove_status(self, combatant_id: str, tag: str) -> bool:
        """Detach a status effect. Removing an absent tag does nothing."""
        combatant = self.registry.get(combatant_id)
        if not self.registry.remove_status(combatant_id, tag):
            return False

        self.log_action(
            f"{combatant.name} is no longer {display_name(tag)}", LogEntryType.STATUS, combatant_id
        )
        return True

    def set_scale(self, scale: Scale | str) -> Scale:
        """Change the scale the encounter is fought at."""
        scale = Scale.parse(scale)
        if scale != self.scale:
            self.scale = scale
            self.log_action(f"Combat scale changed to {scale.display_name}", LogEntryType.SCALE)
        return self.scale

    def roll_initiative(self, combatant_id: str) -> int | None:
        """Roll (or re-roll) one combatant's initiative before combat.

        Raises:
            AlreadyActive: If combat is running
        """
        if self.is_active:
            logger.warning("Refusing to re-roll initiative during active combat")
            raise AlreadyActive("Initiative can only be rolled before combat starts")
        return self._roll_initiative(combatant_id)

    def roll_all_initiative(self) -> dict[str, int]:
        """Roll initiative for every combatant that has none.

        Returns:
            Mapping of combatant id to the newly rolled initiative
        """
        rolled = {}
        for combatant in self.registry:
            if combatant.initiative is None:
                rolled[combatant.id] = self._roll_initiative(combatant.id)
        return rolled

    def _roll_initiative(self, combatant_id: str) -> int | None:
        combatant = self.registry.get(combatant_id)
        initiative = self.registry.roll_initiative(combatant_id, self.dice)
        if initiative is None:
            return None

        modifier = combatant.initiative_modifier
        self.log_action(
            f"{combatant.name} rolled initiative: {initiative - modifier} + {modifier} = {initiative}",
            LogEntryType.ROLL,
            combatant_id,
            initiative,
        )
        return initiative

    def _insert_into_turn_order(self, combatant: Combatant) -> None:
        """Slot a late joiner after everyone who outranks or ties it."""
        key = initiative_sort_key(combatant)
        position = len(self._turn_order)
        for i, other_id in enumerate(self._turn_order):
            if key < initiative_sort_key(self.registry.get(other_id)):
                position = i
                break

        self._turn_order.insert(position, combatant.id)
        if position <= self._turn_index:
            self._turn_index += 1

    def start(self) -> Combatant:
        """Start combat: roll missing initiative and fix the turn order.

        Returns:
            The combatant holding the first turn

        Raises:
            AlreadyActive: If combat is already running
            EmptyEncounter: If there are no combatants
        """
        if self.is_active:
            logger.warning("start() called while combat is already active")
            raise AlreadyActive("Combat is already active")
        if not len(self.registry):
            logger.warning("start() called with no combatants")
            raise EmptyEncounter("Add combatants before starting combat")

        self.roll_all_initiative()

        self._turn_order = [c.id for c in self.sorted_by_initiative()]
        self._turn_index = 0
        self.round_number = 1
        self.state = CombatState.ACTIVE

        logger.info("Combat started with %d combatants", len(self._turn_order))
        self.log_action("Combat started!")
        return self._begin_turn()

    def next_turn(self) -> Combatant:
        """Pass the turn to the next combatant in the captured order.

        Wrapping past the last combatant starts a new round and applies
        round-boundary effects once.

        Returns:
            The new turn holder

        Raises:
            CombatNotActive: If combat is not running
        """
        if not self.is_active:
            logger.warning("next_turn() called while combat is not active")
            raise CombatNotActive("Start combat before advancing turns")

        self._turn_index += 1
        if self._turn_index >= len(self._turn_order):
            self._wrap_round()

        return self._begin_turn()

    def end(self) -> None:
        """End combat, clearing initiative. HP and status effects persist.

        Raises:
            CombatNotActive: If combat is not running
        """
        if not self.is_active:
            logger.warning("end() called while combat is not active")
            raise CombatNotActive("No combat to end")

        self._finish("Combat ended")

    def _finish(self, message: str) -> None:
        self.state = CombatState.IDLE
        self._turn_order = []
        self._turn_index = 0
        self.registry.clear_initiative()

        logger.info("%s after %d rounds", message, self.round_number)
        self.log_action(message)

    def _begin_turn(self) -> Combatant:
        combatant = self.registry.get(self._turn_order[self._turn_index])
        self.log_action(f"{combatant.name}'s turn", LogEntryType.TURN, combatant.id)
        return combatant

    def _wrap_round(self) -> None:
        self._turn_index = 0
        self.round_number += 1

        logger.info("Round %d begins", self.round_number)
        self.log_action(f"Round {self.round_number} begins", LogEntryType.ROUND)
        self._process_round_boundary()

    def _process_round_boundary(self) -> None:
        """Apply damage-over-time effects, once per round transition."""
        for combatant in self.registry:
            for tag in list(combatant.status_effects):
                damage = self._damage_over_time.get(tag)
                if not damage:
                    continue

                effect = get_effect(tag)
                damage_type = effect.damage_type if effect else "physical"
                self.apply_damage(combatant.id, damage, damage_type)
                self.log_action(
                    f"{combatant.name} takes {damage} {damage_type} damage from {display_name(tag).lower()}",
                    LogEntryType.STATUS,
                    combatant.id,
                )

    def to_dict(self) -> dict[str, Any]:
        """Convert the encounter to plain data for saving."""
        return {
            "combatants": [c.to_dict() for c in self.registry],
            "round": self.round_number,
            "is_active": self.is_active,
            "current_turn": self.current_turn_id,
            "turn_order": list(self._turn_order),
            "scale": self.scale.value,
            "log": [entry.to_dict() for entry in self._log],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        dice: DiceEngine | None = None,
        converter: ScaleConverter | None = None,
        config: CombatConfig | None = None,
    ) -> "EncounterState":
        """Rehydrate an encounter from a snapshot.

        A missing turn order on an active snapshot is re-derived from the
        stored initiative values.

        Raises:
            ValueError: If the snapshot is inconsistent
        """
        encounter = cls(dice=dice, converter=converter, config=config)
        encounter.registry.load([Combatant.from_dict(c) for c in data.get("combatants", [])])
        encounter.round_number = max(1, int(data.get("round", 1)))
        encounter.scale = Scale.parse(data.get("scale", encounter.config.default_scale))
        encounter._log = [CombatLogEntry.from_dict(e) for e in data.get("log", [])]

        if not data.get("is_active"):
            return encounter

        if not len(encounter.registry):
            raise ValueError("Active encounter snapshot has no combatants")

        turn_order = list(data.get("turn_order") or []) or [c.id for c in encounter.sorted_by_initiative()]
        unknown = [cid for cid in turn_order if cid not in encounter.registry]
        if unknown:
            raise ValueError(f"Turn order references unknown combatants: {unknown}")
        # Combatants missing from a stored order still need a turn
        turn_order += [c.id for c in encounter.sorted_by_initiative() if c.id not in turn_order]

        current = data.get("current_turn") or turn_order[0]
        if current not in turn_order:
            raise ValueError(f"Turn holder {current} is not in the encounter")

        encounter._turn_order = list(turn_order)
        encounter._turn_index = turn_order.index(current)
        encounter.state = CombatState.ACTIVE
        return encounter


CombatStateMachine = EncounterState
