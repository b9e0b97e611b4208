"""
Persistent user settings stored as JSON next to the application.
"""

import os
import json
import logging

from wplace_api import BACKEND_URL, SITE_URL

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = os.path.join(os.path.dirname(os.path.abspath(__file__)), "settings.json")

DEFAULTS = {
    "backend_url": BACKEND_URL,
    "site_url": SITE_URL,
    "language": "en",
    "auto_recovery": True,
    "resolution": 1.0,
    "palette_file": None,
    "user_data_dir": None,
    "headless": False,
    "anchor": None,
}


class Settings:
    """Settings with defaults; unknown keys in the file are ignored"""

    def __init__(self, config_file=None, **overrides):
        self.config_file = config_file or DEFAULT_SETTINGS_FILE
        self.values = dict(DEFAULTS)
        self.values.update({k: v for k, v in overrides.items() if k in DEFAULTS})

    def __getattr__(self, name):
        values = self.__dict__.get("values")
        if values is not None and name in values:
            return values[name]
        raise AttributeError(name)

    def update(self, **values):
        """Override settings, skipping None values and unknown keys"""
        for key, value in values.items():
            if key in DEFAULTS and value is not None:
                self.values[key] = value

    def load(self):
        """Load settings from the JSON file

        Returns:
            bool: True if a settings file was read
        """
        if not os.path.exists(self.config_file):
            logger.info(f"No settings file found at {self.config_file}, using defaults")
            return False

        with open(self.config_file, 'r', encoding='utf-8') as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.config_file} does not contain an object")

        for key, value in data.items():
            if key in DEFAULTS:
                self.values[key] = value
            else:
                logger.debug(f"Ignoring unknown setting {key!r}")

        if "resolution" in data:
            self.values["resolution"] = float(data["resolution"])
        if "auto_recovery" in data:
            self.values["auto_recovery"] = bool(data["auto_recovery"])

        logger.info(f"Settings loaded successfully from {self.config_file}")
        return True

    def save(self):
        """Save settings to the JSON file with pretty formatting"""
        config_dir = os.path.dirname(self.config_file)
        if config_dir and not os.path.exists(config_dir):
            os.makedirs(config_dir)

        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self.values, f, indent=4)

        logger.info(f"Settings saved successfully to {self.config_file}")
        return True
