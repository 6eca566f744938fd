"""YuFi - Runtime configuration.

Settings are read from built-in defaults, then the JSON file
``~/.config/yufi/config.json``, then ``YUFI_*`` environment variables.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

BACKEND_NETWORKMANAGER = 'networkmanager'
BACKEND_MOCK = 'mock'
BACKENDS = (BACKEND_NETWORKMANAGER, BACKEND_MOCK)

CONFIG_DIR = Path.home() / '.config' / 'yufi'
CONFIG_FILE = CONFIG_DIR / 'config.json'

# Environment variable -> Settings field
ENV_VARS = {
    'YUFI_BACKEND': 'backend',
    'YUFI_POLL_INTERVAL_MS': 'poll_interval_ms',
    'YUFI_DEBOUNCE_MS': 'debounce_ms',
    'YUFI_CALL_TIMEOUT_MS': 'call_timeout_ms',
    'YUFI_ACTIVATION_TIMEOUT_S': 'activation_timeout_s',
    'YUFI_LOG_LEVEL': 'log_level',
    'YUFI_LOG_FILE': 'log_file',
}


@dataclass(frozen=True)
class Settings:
    """Tunables shared by the orchestrator and the front-ends."""
    backend: str = BACKEND_NETWORKMANAGER
    poll_interval_ms: int = 50
    debounce_ms: int = 150
    call_timeout_ms: int = 25000
    activation_timeout_s: float = 90.0
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0


def _coerce(name: str, raw, current):
    """Convert *raw* to the type of the field's current value.

    Raises:
        ValueError: If the value cannot be converted or is out of range.
    """
    if name == 'backend':
        value = str(raw).strip().lower()
        if value not in BACKENDS:
            raise ValueError(f'unknown backend {raw!r}')
        return value
    if name == 'log_level':
        value = str(raw).strip().upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f'unknown log level {raw!r}')
        return value
    if name == 'log_file':
        return str(raw) if raw else None
    if isinstance(current, float):
        value = float(raw)
    else:
        value = int(raw)
    if value <= 0:
        raise ValueError(f'{name} must be positive')
    return value


def _apply(settings: Settings, values: dict, source: str) -> Settings:
    known = {f.name for f in fields(Settings)}
    changes = {}
    for name, raw in values.items():
        if name not in known:
            logger.debug('Ignoring unknown setting %r from %s', name, source)
            continue
        try:
            changes[name] = _coerce(name, raw, getattr(settings, name))
        except (TypeError, ValueError) as e:
            logger.warning('Invalid value for %s in %s: %s', name, source, e)
    return replace(settings, **changes)


def load_settings(path: Optional[Path] = None, environ=None) -> Settings:
    """Load settings from defaults, the config file and the environment.

    Args:
        path: Config file to read instead of ``~/.config/yufi/config.json``.
        environ: Mapping to read instead of ``os.environ``.

    Returns:
        A Settings instance.  A missing or corrupt file is not an error.
    """
    path = path or CONFIG_FILE
    environ = os.environ if environ is None else environ
    settings = Settings()

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if isinstance(data, dict):
                settings = _apply(settings, data, str(path))
            else:
                logger.warning('Ignoring %s: top level is not an object', path)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning('Could not load config file %s: %s', path, e)

    env_values = {field_name: environ[var]
                  for var, field_name in ENV_VARS.items() if var in environ}
    if env_values:
        settings = _apply(settings, env_values, 'environment')
    return settings
