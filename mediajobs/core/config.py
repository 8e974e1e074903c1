"""
Application configuration manager.
Merges built-in defaults, an optional JSON file and MEDIAJOBS_* environment
variables (environment wins).
"""

import json
import logging
import os
from pathlib import Path

from mediajobs.core.constants import (
    CONFIG_PATH, ENV_PREFIX, DB_PATH, DEFAULT_TMP_ROOT, DEFAULT_OUTPUT_ROOT,
    DEFAULT_LOG_DIR, DEFAULT_HOST, DEFAULT_PORT,
    MAX_ARTIFACT_MB, MAX_DURATION_SEC, STAGE_TIMEOUT_SEC, UPSTREAM_TIMEOUT_SEC,
    YTDLP_BIN, FFMPEG_BIN, FFPROBE_BIN,
    OPENAI_API_KEY_ENV, GEMINI_API_KEY_ENV,
)

# Validation bounds
_ARTIFACT_MB_MIN = 1
_ARTIFACT_MB_MAX = 2048
_DURATION_MIN = 10
_DURATION_MAX = 24 * 3600
_TIMEOUT_MIN = 5
_TIMEOUT_MAX = 6 * 3600

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'max_artifact_mb': MAX_ARTIFACT_MB,
    'max_duration_sec': MAX_DURATION_SEC,
    'stage_timeout_sec': STAGE_TIMEOUT_SEC,
    'upstream_timeout_sec': UPSTREAM_TIMEOUT_SEC,
    'tmp_root': str(DEFAULT_TMP_ROOT),
    'output_root': str(DEFAULT_OUTPUT_ROOT),
    'db_path': str(DB_PATH),
    'log_dir': str(DEFAULT_LOG_DIR),
    'host': DEFAULT_HOST,
    'port': DEFAULT_PORT,
    'ytdlp': YTDLP_BIN,
    'ffmpeg': FFMPEG_BIN,
    'ffprobe': FFPROBE_BIN,
}

# Keys that must never be written to logs or diagnostics
_SECRET_KEYS = ('openai_api_key', 'gemini_api_key')


class AppConfig:
    """Manages application configuration."""

    def __init__(self, config_path: Path | None = None,
                 environ: dict | None = None, **overrides):
        self.path = config_path or Path(os.environ.get(f"{ENV_PREFIX}CONFIG", CONFIG_PATH))
        self._environ = os.environ if environ is None else environ
        self._data: dict = {}
        self.load()
        for key, value in overrides.items():
            self._data[key] = self._validate(key, value)

    def load(self):
        """Load config from defaults, the JSON file and the environment."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except Exception as e:
                logger.warning("Failed to load config file %s: %s", self.path, e)

        for key in _DEFAULTS:
            env_value = self._environ.get(f"{ENV_PREFIX}{key.upper()}")
            if env_value is not None and env_value != "":
                self._data[key] = self._validate(key, env_value)

        self._data['openai_api_key'] = self._environ.get(OPENAI_API_KEY_ENV) or None
        self._data['gemini_api_key'] = self._environ.get(GEMINI_API_KEY_ENV) or None

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key == 'max_artifact_mb':
            return self._clamp_number(key, value, float, _ARTIFACT_MB_MIN, _ARTIFACT_MB_MAX)

        if key == 'max_duration_sec':
            return self._clamp_number(key, value, int, _DURATION_MIN, _DURATION_MAX)

        if key in ('stage_timeout_sec', 'upstream_timeout_sec'):
            return self._clamp_number(key, value, int, _TIMEOUT_MIN, _TIMEOUT_MAX)

        if key == 'port':
            return self._clamp_number(key, value, int, 1, 65535)

        return value

    @staticmethod
    def _clamp_number(key: str, value, cast, lo, hi):
        try:
            value = cast(value)
        except (TypeError, ValueError):
            logger.warning("Invalid %s %r, using default", key, value)
            return _DEFAULTS[key]
        return max(lo, min(hi, value))

    def as_dict(self) -> dict:
        """Config values safe to log (service keys redacted)."""
        data = dict(self._data)
        for key in _SECRET_KEYS:
            if data.get(key):
                data[key] = "***"
        return data

    @property
    def max_artifact_mb(self) -> float:
        return self._data['max_artifact_mb']

    @property
    def max_artifact_bytes(self) -> int:
        return int(self.max_artifact_mb * 1024 * 1024)

    @property
    def max_duration_sec(self) -> int:
        return self._data['max_duration_sec']

    @property
    def stage_timeout_sec(self) -> int:
        return self._data['stage_timeout_sec']

    @property
    def upstream_timeout_sec(self) -> int:
        return self._data['upstream_timeout_sec']

    @property
    def tmp_root(self) -> Path:
        return Path(self._data['tmp_root'])

    @property
    def output_root(self) -> Path:
        return Path(self._data['output_root'])

    @property
    def db_path(self) -> Path:
        return Path(self._data['db_path'])

    @property
    def log_dir(self) -> Path:
        return Path(self._data['log_dir'])

    @property
    def openai_api_key(self) -> str | None:
        return self._data.get('openai_api_key')

    @property
    def gemini_api_key(self) -> str | None:
        return self._data.get('gemini_api_key')
