"""Settings and config persistence for pidffb.

Config is stored at ~/.config/pidffb/config.json (XDG-compliant).

Usage:
    from pidffb.conf import load_settings

    settings = load_settings()
    settings.vendor_id          # USB vendor id of the wheel base
    settings.product_id         # USB product id
    settings.backend            # "auto", "hidapi" or "pyusb"
    settings.device_gain        # gain sent by initialize() (0-255)

    # Per-device overrides live under "devices" -> "<vid>_<pid>"
    from pidffb.conf import device_config_key, save_device_setting
    save_device_setting(device_config_key(0x346E, 0x0002), 'device_gain', 200)

    # Low-level config access
    from pidffb.conf import load_config, save_config
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from typing import Optional

from .constants import (
    DEFAULT_PID,
    DEFAULT_VID,
    FULL_GAIN,
    READ_MAX_ATTEMPTS,
    READ_RETRY_DELAY_S,
    STREAM_INTERVAL_S,
)

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'pidffb')
CONFIG_PATH = os.path.join(CONFIG_DIR, 'config.json')


# =========================================================================
# Low-level config persistence
# =========================================================================

def load_config() -> dict:
    """Load user config from disk. Returns empty dict on missing/corrupt file."""
    try:
        with open(CONFIG_PATH, 'r') as f:
            config = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return config if isinstance(config, dict) else {}


def save_config(config: dict):
    """Save user config to disk."""
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(CONFIG_PATH, 'w') as f:
        json.dump(config, f, indent=2)


# =========================================================================
# Per-device settings
# =========================================================================

def device_config_key(vid: int, pid: int) -> str:
    """Config key for one device model, e.g. '346e_0002'."""
    return f"{vid:04x}_{pid:04x}"


def get_device_config(key: str) -> dict:
    """Overrides stored for one device (empty dict if none)."""
    devices = load_config().get('devices', {})
    entry = devices.get(key, {}) if isinstance(devices, dict) else {}
    return entry if isinstance(entry, dict) else {}


def save_device_setting(key: str, setting: str, value):
    """Save one per-device setting."""
    config = load_config()
    devices = config.setdefault('devices', {})
    devices.setdefault(key, {})[setting] = value
    save_config(config)


# =========================================================================
# Settings
# =========================================================================

@dataclass
class Settings:
    """Connection and timing settings for one controller."""
    vendor_id: int = DEFAULT_VID
    product_id: int = DEFAULT_PID
    serial: Optional[str] = None
    backend: str = "auto"
    device_gain: int = FULL_GAIN
    read_attempts: int = READ_MAX_ATTEMPTS
    read_retry_delay_s: float = READ_RETRY_DELAY_S
    stream_interval_s: float = STREAM_INTERVAL_S


_SETTING_TYPES = {
    'vendor_id': (int,),
    'product_id': (int,),
    'serial': (str, type(None)),
    'backend': (str,),
    'device_gain': (int,),
    'read_attempts': (int,),
    'read_retry_delay_s': (int, float),
    'stream_interval_s': (int, float),
}


def _apply(settings: Settings, values: dict, source: str) -> None:
    names = {f.name for f in fields(Settings)}
    for key, value in values.items():
        if key not in names:
            continue
        if isinstance(value, bool) or not isinstance(value, _SETTING_TYPES[key]):
            log.warning("%s: ignoring %s=%r (wrong type)", source, key, value)
            continue
        setattr(settings, key, value)


def load_settings() -> Settings:
    """Build Settings from the config file, then apply per-device overrides."""
    config = load_config()
    settings = Settings()
    _apply(settings, config, CONFIG_PATH)
    key = device_config_key(settings.vendor_id, settings.product_id)
    overrides = get_device_config(key)
    if overrides:
        log.debug("Applying device overrides for %s: %s", key, sorted(overrides))
        _apply(settings, overrides, f"devices.{key}")
    return settings


def save_settings(settings: Settings):
    """Persist Settings as top-level keys, keeping any other config."""
    config = load_config()
    config.update(asdict(settings))
    save_config(config)
