import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional

import thermotray.settings as default_settings

log = logging.getLogger(__name__)


class MergedSettings:
    """
    A singleton class that merges default settings with JSON/env overrides.

    This class provides a unified, attribute-based access point for all
    application configuration. It follows a clear precedence:
    1. Base values from `settings.py`.
    2. Overrides from the environment / `.env` file (read in settings.py).
    3. Overrides from `overrides.json` for settings in `MODIFIABLE_SETTINGS`.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        """
        Initializes the settings object by loading defaults and overrides.

        :param overrides_path: Alternate location of the overrides file.
        """
        self._load_defaults()
        if overrides_path is not None:
            self.OVERRIDES_JSON_PATH = Path(overrides_path)
        self._load_overrides()

    def _load_defaults(self) -> None:
        """Loads all uppercase attributes from the settings.py module as defaults."""
        for key in dir(default_settings):
            if key.isupper():
                setattr(self, key, getattr(default_settings, key))

    def _load_overrides(self) -> None:
        """
        Loads and applies settings from the `overrides.json` file.

        Only keys listed in `MODIFIABLE_SETTINGS` are applied. Values are
        coerced to the type of the default they replace.
        """
        overrides = self._read_overrides_file()
        if not overrides:
            return

        log.info(f"Loading runtime configuration overrides from {self.OVERRIDES_JSON_PATH}")
        for key, value in overrides.items():
            if not hasattr(self, key):
                log.warning(f"Override setting '{key}' not found in default settings. Ignoring.")
                continue
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Attempted to override non-modifiable setting '{key}'. Ignoring.")
                continue

            try:
                setattr(self, key, self._coerce(getattr(self, key), value))
                log.debug(f"Overridden setting: {key} = {value}")
            except (ValueError, TypeError) as e:
                log.error(f"Could not convert value '{value}' for key '{key}'. Error: {e}")

    def _read_overrides_file(self) -> Dict[str, Any]:
        """Returns the raw contents of `overrides.json`, or an empty dict if it is missing or invalid."""
        if not self.OVERRIDES_JSON_PATH.exists():
            return {}

        try:
            with self.OVERRIDES_JSON_PATH.open('r') as f:
                overrides = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.error(f"Failed to load or parse overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return {}

        if not isinstance(overrides, dict):
            log.error(f"Overrides file '{self.OVERRIDES_JSON_PATH}' must contain a JSON object. Ignoring.")
            return {}
        return overrides

    @staticmethod
    def _coerce(original_value: Any, value: Any) -> Any:
        """Coerces an override to the type of the default value it replaces."""
        if isinstance(original_value, bool):
            return str(value).lower() in ('true', '1', 't', 'yes', 'y')
        if isinstance(original_value, Path):
            return Path(value)
        if isinstance(original_value, list):
            if isinstance(value, str):
                return [item.strip() for item in value.split(",") if item.strip()]
            return list(value)
        if original_value is not None:
            return type(original_value)(value)
        return value

    def get(self, item: str, default: Any = None) -> Any:
        """Provides dictionary-like access to settings with a default value."""
        return getattr(self, item, default)

    def save_overrides(self, overrides_to_save: Dict[str, Any]) -> bool:
        """
        Saves the provided dictionary of settings to the overrides JSON file.

        Only keys present in `MODIFIABLE_SETTINGS` are persisted.

        :param overrides_to_save: A dictionary of settings to persist.
        :return bool: True if the file was written.
        """
        filtered_overrides = {
            key: value
            for key, value in overrides_to_save.items()
            if key in self.MODIFIABLE_SETTINGS
        }

        if not filtered_overrides:
            log.warning("No modifiable settings provided to save.")
            return False

        try:
            self.OVERRIDES_JSON_PATH.parent.mkdir(parents=True, exist_ok=True)
            with self.OVERRIDES_JSON_PATH.open('w') as f:
                json.dump(filtered_overrides, f, indent=4)
            log.info(f"Configuration overrides saved to {self.OVERRIDES_JSON_PATH}")
        except IOError as e:
            log.error(f"Failed to write to overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return False
        return True

    def set_override(self, key: str, value: Any) -> bool:
        """
        Applies one setting and persists it next to the overrides already on disk.

        :param key: Name of a setting in `MODIFIABLE_SETTINGS`.
        :param value: The new value, converted to the type of the current one.
        :return bool: True if the setting was applied and saved.
        """
        key = key.upper()
        if key not in self.MODIFIABLE_SETTINGS:
            log.warning(f"'{key}' is not a modifiable setting.")
            return False
        try:
            coerced = self._coerce(getattr(self, key), value)
        except (ValueError, TypeError) as e:
            log.error(f"Could not convert value '{value}' for key '{key}'. Error: {e}")
            return False

        setattr(self, key, coerced)
        overrides = self._read_overrides_file()
        overrides[key] = coerced
        return self.save_overrides(overrides)


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
