"""Command-line entry point for the Cosmos Engine VTT core."""

import argparse
import logging
import sys
from pathlib import Path

from .config import AppConfig, load_config
from .game.combat import CombatError, EncounterState
from .game.dice import DiceEngine, RollMode
from .game.formula import FormulaError, FormulaEvaluator
from .game.scale import Scale, ScaleConverter

logger = logging.getLogger(__name__)


def setup_logging(config: AppConfig, verbose: bool = False) -> None:
    """Configure logging from the loaded configuration."""
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.logging.format)


def parse_attributes(pairs: list[str]) -> dict[str, int]:
    """Turn ``name=value`` pairs into an attribute mapping.

    Raises:
        ValueError: If a pair is malformed
    """
    attributes = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected name=value, got {pair!r}")
        attributes[name.strip()] = int(value)
    return attributes


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="cosmos-vtt",
        description="Cosmos Engine VTT - dice, scale and combat resolution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cosmos-vtt roll -m 3 -t 14                 # 2d10+3 vs 14
  cosmos-vtt roll --mode advantage           # 3d10 keep highest 2
  cosmos-vtt convert 100 personal starship   # 1.0
  cosmos-vtt formula "2d10 + @agility" --attr agility=3
  cosmos-vtt demo                            # Scripted three-round encounter
        """,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible rolls")

    subparsers = parser.add_subparsers(dest="command", required=True)

    roll_parser = subparsers.add_parser("roll", help="Roll a 2d10 resolution check")
    roll_parser.add_argument("-m", "--modifier", type=int, default=0)
    roll_parser.add_argument("-t", "--target", type=int, default=None, help="Target number")
    roll_parser.add_argument(
        "--mode",
        choices=[mode.value for mode in RollMode],
        default=RollMode.NORMAL.value,
    )

    convert_parser = subparsers.add_parser("convert", help="Convert damage between scales")
    convert_parser.add_argument("amount", type=float)
    convert_parser.add_argument("from_scale", choices=[scale.value for scale in Scale])
    convert_parser.add_argument("to_scale", choices=[scale.value for scale in Scale])

    formula_parser = subparsers.add_parser("formula", help="Evaluate a dice formula")
    formula_parser.add_argument("expression")
    formula_parser.add_argument("--attr", action="append", default=[], metavar="NAME=VALUE")

    demo_parser = subparsers.add_parser("demo", help="Run a scripted encounter")
    demo_parser.add_argument("--rounds", type=int, default=3)

    return parser.parse_args(argv)


def run_demo(config: AppConfig, dice: DiceEngine, rounds: int) -> EncounterState:
    """Play out a short encounter and print its log."""
    encounter = EncounterState(dice=dice, config=config.combat)
    encounter.subscribe(lambda entry: print(f"[R{entry.round_number}] {entry.message}"))

    vex = encounter.add_combatant("Captain Vex", "player", max_hp=40, initiative_modifier=3)
    drone = encounter.add_combatant("Security Drone", "enemy", max_hp=25, initiative_modifier=1)
    encounter.add_combatant("Raider", "enemy", max_hp=30, initiative_modifier=2)

    encounter.start()
    encounter.add_status(drone, "burning")

    while encounter.round_number <= rounds:
        holder = encounter.get_current_combatant()
        target = drone if holder.id == vex else vex
        attack = dice.roll(modifier=holder.initiative_modifier, target_number=12)
        if attack.success:
            encounter.apply_damage(target, max(1, attack.margin))
        encounter.next_turn()

    encounter.end()
    return encounter


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    args = parse_arguments(argv)

    try:
        config = load_config(args.config)
        setup_logging(config, args.verbose)

        dice = DiceEngine(config=config.dice)
        if args.seed is not None:
            dice.seed(args.seed)

        if args.command == "roll":
            print(dice.roll(args.modifier, args.target, args.mode))
        elif args.command == "convert":
            converter = ScaleConverter()
            converted = converter.convert(args.amount, args.from_scale, args.to_scale)
            effect = converter.describe_effect(args.from_scale, args.to_scale)
            print(f"{converted} ({effect})")
        elif args.command == "formula":
            evaluator = FormulaEvaluator(dice)
            print(evaluator.evaluate(args.expression, parse_attributes(args.attr)))
        elif args.command == "demo":
            run_demo(config, dice, args.rounds)

        return 0

    except (CombatError, FormulaError, ValueError) as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
