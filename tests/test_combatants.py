"""Tests for combatants and the combatant registry."""

import random

import pytest

from cosmos_vtt.game.combatants import Combatant, CombatantRegistry, CombatantType, HealthState
from cosmos_vtt.game.conditions import (
    STANDARD_EFFECTS,
    damage_over_time_table,
    display_name,
    get_effect,
    normalize_tag,
)
from cosmos_vtt.game.dice import DiceEngine


class TestCombatant:
    """Tests for Combatant class."""

    def make(self, current_hp: int, max_hp: int = 100) -> Combatant:
        return Combatant(
            id="c-1",
            name="Kira",
            combatant_type=CombatantType.PLAYER,
            max_hp=max_hp,
            current_hp=current_hp,
        )

    @pytest.mark.parametrize(
        "current_hp, expected",
        [
            (100, HealthState.HEALTHY),
            (76, HealthState.HEALTHY),
            (75, HealthState.WOUNDED),
            (51, HealthState.WOUNDED),
            (50, HealthState.INJURED),
            (26, HealthState.INJURED),
            (25, HealthState.CRITICAL),
            (1, HealthState.CRITICAL),
            (0, HealthState.DYING),
        ],
    )
    def test_health_state(self, current_hp, expected):
        """Test health bands by HP percentage."""
        assert self.make(current_hp).health_state == expected

    def test_is_conscious(self):
        """Test consciousness follows HP."""
        assert self.make(1).is_conscious
        assert not self.make(0).is_conscious

    def test_dict_round_trip(self):
        """Test serialization keeps every field."""
        combatant = self.make(40)
        combatant.initiative = 12
        combatant.status_effects = ["burning", "prone"]

        restored = Combatant.from_dict(combatant.to_dict())
        assert restored == combatant

    def test_from_dict_clamps_hp(self):
        """Test out-of-range HP is clamped on load."""
        data = {"id": "x", "name": "Drone", "type": "enemy", "max_hp": 20, "current_hp": 50}
        assert Combatant.from_dict(data).current_hp == 20

        data["current_hp"] = -5
        assert Combatant.from_dict(data).current_hp == 0

    def test_from_dict_deduplicates_statuses(self):
        """Test duplicate status tags collapse on load."""
        data = {"id": "x", "max_hp": 10, "status_effects": ["Burning", "burning", "prone"]}
        assert Combatant.from_dict(data).status_effects == ["burning", "prone"]

    def test_from_dict_invalid(self):
        """Test malformed records raise ValueError."""
        with pytest.raises(ValueError):
            Combatant.from_dict({"name": "No id", "max_hp": 10})
        with pytest.raises(ValueError):
            Combatant.from_dict({"id": "x", "max_hp": 0})


class TestCombatantRegistry:
    """Tests for CombatantRegistry."""

    def setup_method(self):
        """Set up test fixtures."""
        self.registry = CombatantRegistry()
        self.kira = self.registry.add("Kira", CombatantType.PLAYER, max_hp=50, initiative_modifier=2)

    def test_add_defaults(self):
        """Test new combatants start at full HP with no initiative."""
        kira = self.registry.get(self.kira)
        assert kira.name == "Kira"
        assert kira.current_hp == 50
        assert kira.initiative is None
        assert kira.status_effects == []
        assert self.kira in self.registry
        assert len(self.registry) == 1

    def test_add_accepts_type_string(self):
        """Test combatant types given as strings."""
        cid = self.registry.add("Raider", "enemy", max_hp=10)
        assert self.registry.get(cid).combatant_type == CombatantType.ENEMY

    def test_add_invalid(self):
        """Test invalid max HP and type raise ValueError."""
        with pytest.raises(ValueError):
            self.registry.add("Ghost", max_hp=0)
        with pytest.raises(ValueError):
            self.registry.add("Ghost", "spectator", max_hp=10)

    def test_ids_not_reused(self):
        """Test ids stay unique across removals."""
        seen = {self.kira}
        for _ in range(20):
            cid = self.registry.add("Temp", max_hp=5)
            assert cid not in seen
            seen.add(cid)
            self.registry.remove(cid)

    def test_remove_is_idempotent(self):
        """Test removing twice or removing unknown ids is harmless."""
        assert self.registry.remove(self.kira).name == "Kira"
        assert self.registry.remove(self.kira) is None
        assert self.registry.remove("nobody") is None
        assert len(self.registry) == 0

    def test_apply_damage_clamps_at_zero(self):
        """Test overkill damage leaves HP at zero."""
        assert self.registry.apply_damage(self.kira, 1000) == 0
        assert self.registry.get(self.kira).current_hp == 0

    def test_apply_damage(self):
        """Test normal damage."""
        assert self.registry.apply_damage(self.kira, 12) == 38

    def test_negative_amounts_rejected(self):
        """Test negative damage and healing raise ValueError."""
        with pytest.raises(ValueError):
            self.registry.apply_damage(self.kira, -1)
        with pytest.raises(ValueError):
            self.registry.heal(self.kira, -1)

    def test_heal_returns_actual_amount(self):
        """Test healing is capped at max HP."""
        self.registry.apply_damage(self.kira, 10)
        assert self.registry.heal(self.kira, 4) == 4
        assert self.registry.heal(self.kira, 100) == 6
        assert self.registry.get(self.kira).current_hp == 50

    def test_set_hp_clamps(self):
        """Test direct HP edits are clamped."""
        assert self.registry.set_hp(self.kira, 70) == 50
        assert self.registry.set_hp(self.kira, -3) == 0
        assert self.registry.set_hp(self.kira, 22) == 22

    def test_unknown_ids_are_noops(self):
        """Test mutations on unknown ids return None or False."""
        assert self.registry.apply_damage("ghost", 5) is None
        assert self.registry.heal("ghost", 5) is None
        assert self.registry.set_hp("ghost", 5) is None
        assert self.registry.add_status("ghost", "prone") is False
        assert self.registry.remove_status("ghost", "prone") is False
        assert self.registry.roll_initiative("ghost", DiceEngine()) is None

    def test_hp_invariant_under_random_mutation(self):
        """Test 0 <= HP <= max after any mix of damage, healing and edits."""
        rng = random.Random(7)
        for _ in range(500):
            operation = rng.choice(["damage", "heal", "set"])
            value = rng.randint(0, 80)
            if operation == "damage":
                self.registry.apply_damage(self.kira, value)
            elif operation == "heal":
                self.registry.heal(self.kira, value)
            else:
                self.registry.set_hp(self.kira, value - 20)
            kira = self.registry.get(self.kira)
            assert 0 <= kira.current_hp <= kira.max_hp

    def test_status_set_semantics(self):
        """Test statuses behave as an ordered set."""
        assert self.registry.add_status(self.kira, "burning") is True
        assert self.registry.add_status(self.kira, "Burning") is False
        assert self.registry.add_status(self.kira, "prone") is True
        assert self.registry.get(self.kira).status_effects == ["burning", "prone"]

        assert self.registry.remove_status(self.kira, "burning") is True
        assert self.registry.remove_status(self.kira, "burning") is False
        assert self.registry.get(self.kira).status_effects == ["prone"]

    def test_custom_status_accepted(self):
        """Test tags outside the catalog are accepted."""
        assert self.registry.add_status(self.kira, "Hacked")
        assert self.registry.get(self.kira).has_status("hacked")

    def test_roll_initiative(self):
        """Test initiative is 1d10 plus modifier and re-rolls overwrite."""
        dice = DiceEngine()
        dice.rng.randint = lambda a, b: 7
        assert self.registry.roll_initiative(self.kira, dice) == 9

        dice.rng.randint = lambda a, b: 1
        assert self.registry.roll_initiative(self.kira, dice) == 3
        assert self.registry.get(self.kira).initiative == 3

    def test_clear_initiative(self):
        """Test initiative values reset to None."""
        self.registry.roll_initiative(self.kira, DiceEngine())
        self.registry.clear_initiative()
        assert self.registry.get(self.kira).initiative is None

    def test_by_type(self):
        """Test filtering by combatant type."""
        self.registry.add("Raider", "enemy", max_hp=10)
        self.registry.add("Pirate", "enemy", max_hp=10)
        assert [c.name for c in self.registry.by_type("enemy")] == ["Raider", "Pirate"]
        assert len(self.registry.by_type(CombatantType.ALLY)) == 0

    def test_rename(self):
        """Test renaming."""
        assert self.registry.rename(self.kira, "Kira Vos") is True
        assert self.registry.rename(self.kira, "Kira Vos") is False
        assert self.registry.get(self.kira).name == "Kira Vos"

    def test_load_rejects_duplicate_ids(self):
        """Test loading records with clashing ids."""
        combatant = self.registry.get(self.kira)
        with pytest.raises(ValueError):
            self.registry.load([combatant, combatant])


class TestStatusCatalog:
    """Tests for the status effect catalog."""

    def test_normalize_tag(self):
        """Test tag normalization."""
        assert normalize_tag(" Flat-Footed") == "flat_footed"
        assert normalize_tag("BURNING") == "burning"

    def test_lookup(self):
        """Test catalog lookups and display names."""
        assert get_effect("Burning").damage_per_round == 5
        assert get_effect("hacked") is None
        assert display_name("cover") == "In Cover"
        assert display_name("hacked") == "Hacked"

    def test_damage_over_time_table(self):
        """Test the default table and overrides."""
        assert damage_over_time_table() == {"burning": 5}
        assert damage_over_time_table({"Acid": 3}) == {"burning": 5, "acid": 3}
        assert damage_over_time_table({"burning": 0}) == {}

    def test_only_burning_is_damage_over_time(self):
        """Test the standard catalog's damage-over-time entries."""
        dot = [key for key, effect in STANDARD_EFFECTS.items() if effect.is_damage_over_time]
        assert dot == ["burning"]
