"""
YAML configuration for the driver, the INDI adapter and the simulator.

The file is looked up in ``$GEM_MOUNT_CONFIG`` and then as ``config.yaml``
next to this package.  Missing sections and keys fall back to
:data:`DEFAULT_CONFIG`.
"""

import copy
import logging
import os

import yaml

from .model import Family, HorizontalCoord, SlewConfig, SyncMode

logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.environ.get("GEM_MOUNT_CONFIG", os.path.join(BASE_DIR, "config.yaml"))

DEFAULT_CONFIG = {
    "observer": {"latitude": 50.1822, "longitude": 19.7925, "elevation": 400},
    "driver": {
        "port": "/dev/ttyUSB0",
        "baud": 9600,
        "family": "ap",
        "timeout": 5.0,
    },
    "mount": {
        "goto_rate": 2,
        "jog_rate": 1,
        "guide_rate": 2,
        "sync_mode": "regular",
        "park_az": None,
        "park_alt": None,
    },
    "status": {
        "poll_interval": 1.0,
        "stasis_samples": 2,
        "ap_epsilon": 0.0,
        "pmc_epsilon_counts": 1,
    },
    "simulator": {
        "family": "ap",
        "port": 9999,
        "slew_speed": 4.0,
    },
}

# options owned by the host and written back on save
PERSISTED_MOUNT_KEYS = ("goto_rate", "jog_rate", "guide_rate", "sync_mode", "park_az", "park_alt")


def _merge(defaults: dict, loaded: dict) -> dict:
    merged = copy.deepcopy(defaults)
    for key, value in (loaded or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str = None) -> dict:
    """Loads configuration from YAML file merged over the defaults."""
    path = path or CONFIG_PATH
    if os.path.exists(path):
        try:
            with open(path, "r") as f:
                return _merge(DEFAULT_CONFIG, yaml.safe_load(f))
        except (OSError, yaml.YAMLError) as e:
            logger.error("Error loading config %s: %s", path, e)
    return copy.deepcopy(DEFAULT_CONFIG)


def save_config(config: dict, path: str = None) -> None:
    """Writes the host-owned mount options back to the YAML file."""
    path = path or CONFIG_PATH
    current = load_config(path)
    for key in PERSISTED_MOUNT_KEYS:
        current["mount"][key] = config.get("mount", {}).get(key)
    with open(path, "w") as f:
        yaml.safe_dump(current, f, default_flow_style=False, sort_keys=False)
    logger.debug("Saved configuration to %s", path)


def port_settings(config: dict):
    """(port, baud) with the PORT and BAUD environment overrides applied."""
    drv_cfg = config["driver"]
    port = os.environ.get("PORT", drv_cfg["port"])
    baud = int(os.environ.get("BAUD", drv_cfg["baud"]))
    return port, baud


def family_from_config(config: dict):
    """The configured family, or None for ``auto``."""
    name = str(config["driver"].get("family", "auto")).lower()
    return None if name == "auto" else Family(name)


def slew_config(config: dict) -> SlewConfig:
    mnt = config["mount"]
    return SlewConfig(
        goto_rate=int(mnt["goto_rate"]),
        jog_rate=int(mnt["jog_rate"]),
        guide_rate=int(mnt["guide_rate"]),
    )


def sync_mode(config: dict) -> SyncMode:
    return SyncMode(str(config["mount"]["sync_mode"]).lower())


def park_position(config: dict):
    mnt = config["mount"]
    if mnt.get("park_az") is None or mnt.get("park_alt") is None:
        return None
    return HorizontalCoord(float(mnt["park_az"]), float(mnt["park_alt"]))
