"""
Configuration management for Dream Weaver
Handles settings storage and retrieval
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .paths import config_path

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")

logger = logging.getLogger(__name__)


class Config:
    """Manage application configuration"""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = Path(config_file) if config_file else config_path()
        self.config_file.parent.mkdir(parents=True, exist_ok=True)

        # Load or create config
        self._config = self._load_config()

    def _load_config(self) -> dict:
        """Load configuration from file, layered over the defaults"""
        config = self._default_config()
        if not self.config_file.exists():
            return config
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Error loading config %s: %s", self.config_file, e)
            return config
        if not isinstance(stored, dict):
            logger.warning("Ignoring config %s: not a JSON object", self.config_file)
            return config
        config.update(stored)
        return config

    def _default_config(self) -> dict:
        """Get default configuration"""
        return {
            'first_launch': True,
            'gemini_api_key': '',
            'text_model': 'gemini-2.5-flash',
            'image_model': 'imagen-4.0-generate-001',
            'request_timeout': 90,  # seconds, per provider call
            'analysis_timeout': 120,  # seconds, text + image join
            'chat_transmit_history': False,
            'speech_language': 'en-US',
            'phrase_time_limit': 15,  # seconds
            'appearance_mode': 'dark',
            'window_width': 1100,
            'window_height': 820,
        }

    def save(self):
        """Save configuration to file"""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(self._config, f, indent=2)
        except OSError as e:
            logger.warning("Error saving config %s: %s", self.config_file, e)

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value"""
        return self._config.get(key, default)

    def set(self, key: str, value: Any):
        """Set configuration value and save"""
        self._config[key] = value
        self.save()

    def get_float(self, key: str, default: float) -> float:
        value = self.get(key)
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return default
        if parsed <= 0:
            return default
        return parsed

    @property
    def api_key(self) -> str:
        """Stored Gemini key, falling back to the environment"""
        stored = str(self.get('gemini_api_key', '') or '').strip()
        if stored:
            return stored
        for name in API_KEY_ENV_VARS:
            value = os.environ.get(name, '').strip()
            if value:
                return value
        return ''
