"""Configuration management for the Cosmos Engine VTT."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class DiceConfig(BaseModel):
    """Core 2d10 resolution settings."""

    sides: int = 10
    dice_count: int = 2
    critical_success: int = 20
    critical_failure: int = 2
    default_target_number: int = 11
    max_history: int = 100


class CombatConfig(BaseModel):
    """Combat tracker configuration."""

    default_scale: str = "personal"
    default_max_hp: int = 50
    # Per-round damage for status tags, merged over the standard catalog
    damage_over_time: dict[str, int] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class AppConfig(BaseModel):
    """Main application configuration."""

    dice: DiceConfig = Field(default_factory=DiceConfig)
    combat: CombatConfig = Field(default_factory=CombatConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path | str | None = None) -> AppConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to ./config.yaml

    Returns:
        AppConfig instance with loaded or default values
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return AppConfig(**data)

    return AppConfig()


def save_config(config: AppConfig, config_path: Path | str | None = None) -> None:
    """Save configuration to YAML file.

    Args:
        config: AppConfig instance to save
        config_path: Path to save to. Defaults to ./config.yaml
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    data = config.model_dump()

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
