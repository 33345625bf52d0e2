"""Combat and scale resolution core: dice, scales, combatants and turns."""

from .combat import (
    AlreadyActive,
    CombatError,
    CombatLogEntry,
    CombatNotActive,
    CombatState,
    CombatStateMachine,
    EmptyEncounter,
    EncounterState,
    LogEntryType,
)
from .combatants import Combatant, CombatantRegistry, CombatantType, HealthState
from .dice import DiceEngine, DiceRollResult, RollMode, SuccessDegree
from .formula import FormulaError, FormulaEvaluator, Macro
from .scale import Scale, ScaleConverter, suggest_scale

__all__ = [
    "AlreadyActive", "CombatError", "CombatLogEntry", "CombatNotActive", "CombatState",
    "CombatStateMachine", "EmptyEncounter", "EncounterState", "LogEntryType",
    "Combatant", "CombatantRegistry", "CombatantType", "HealthState",
    "DiceEngine", "DiceRollResult", "RollMode", "SuccessDegree",
    "FormulaError", "FormulaEvaluator", "Macro",
    "Scale", "ScaleConverter", "suggest_scale",
]
