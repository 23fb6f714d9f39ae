"""
Configuration file handling

Settings live in ~/.config/asar_patcher/config.json. Every key is optional:

    {
        "patches_dir": "/path/to/patches",
        "patches_url": "https://example.com/patches/",
        "timeout": 10,
        "retries": 3,
        "backup": true,
        "unpack": ["*.node"],
        "layout": {
            "linux": ["/opt/app/resources/app.asar"],
            "macos": ["/Applications/App.app/Contents/Resources/app.asar"],
            "windows": "AppData/Local/app"
        }
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from asar_patcher import constants

logger = logging.getLogger("asar_patcher.config")


@dataclass
class AppLayout:
    """
    Where an application keeps its archive on each platform.

    Attributes:
        linux: Candidate archive paths, first existing one wins
        macos: Candidate archive paths, first existing one wins
        windows: Install root below the home directory holding app-X.Y.Z folders
    """
    linux: List[str] = field(default_factory=list)
    macos: List[str] = field(default_factory=list)
    windows: Optional[str] = None

    @classmethod
    def from_json(cls, layout_json: Dict[str, Any]) -> "AppLayout":
        return cls(
            linux=list(layout_json.get(constants.PLATFORM_LINUX, [])),
            macos=list(layout_json.get(constants.PLATFORM_MAC, [])),
            windows=layout_json.get(constants.PLATFORM_WINDOWS),
        )


@dataclass
class PatcherConfig:
    """Settings shared by the CLI and the Patcher."""
    patches_dir: Optional[str] = None
    patches_url: Optional[str] = None
    timeout: int = constants.DEFAULT_TIMEOUT
    retries: int = constants.DEFAULT_RETRIES
    backup: bool = True
    unpack: List[str] = field(default_factory=list)
    layout: AppLayout = field(default_factory=AppLayout)

    @classmethod
    def from_json(cls, config_json: Dict[str, Any]) -> "PatcherConfig":
        return cls(
            patches_dir=config_json.get("patches_dir"),
            patches_url=config_json.get("patches_url"),
            timeout=int(config_json.get("timeout", constants.DEFAULT_TIMEOUT)),
            retries=int(config_json.get("retries", constants.DEFAULT_RETRIES)),
            backup=bool(config_json.get("backup", True)),
            unpack=list(config_json.get("unpack", [])),
            layout=AppLayout.from_json(config_json.get("layout", {})),
        )


def default_config_path() -> Path:
    return Path.home() / ".config" / constants.CONFIG_DIR_NAME / constants.CONFIG_FILE_NAME


def load_config(config_path: Optional[str] = None) -> PatcherConfig:
    """
    Load settings from a JSON file.

    A missing file gives the defaults. An unreadable or malformed file is
    logged and also gives the defaults.

    Args:
        config_path: Path to the config file (default location if None)

    Returns:
        PatcherConfig
    """
    path = Path(config_path) if config_path else default_config_path()
    if not path.exists():
        logger.debug(f"No config file at {path}, using defaults")
        return PatcherConfig()

    try:
        with open(path, "r", encoding=constants.DEFAULT_ENCODING) as f:
            config_json = json.load(f)
        config = PatcherConfig.from_json(config_json)
        logger.debug(f"Loaded config from {path}")
        return config
    except (json.JSONDecodeError, IOError, ValueError, TypeError, AttributeError) as e:
        logger.error(f"Failed to load config {path}: {e}")
        return PatcherConfig()
