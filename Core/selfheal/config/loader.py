from __future__ import annotations

import json
import os
from pathlib import Path

from selfheal.config.schema import HealingSettings

DEBUG_ENV_VAR = "DEBUG_HEALING"


class ConfigLoader:
    """Loads and validates healing settings from JSON and the environment."""

    @staticmethod
    def load(path: str | Path) -> HealingSettings:
        config_path = Path(path)
        with config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return ConfigLoader.from_env(HealingSettings.model_validate(payload))

    @staticmethod
    def from_env(base: HealingSettings | None = None) -> HealingSettings:
        settings = base or HealingSettings()
        flag = os.getenv(DEBUG_ENV_VAR)
        if flag is None:
            return settings
        return settings.model_copy(update={"debug": flag.strip().lower() == "true"})
