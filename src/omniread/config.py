"""Configuration management via .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def _xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


COLOR_SCHEMES = ("light", "dark", "sepia")
LAYOUT_MODES = ("scroll", "single", "double")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class AppConfig:
    # Paths
    data_dir: Path = field(default_factory=lambda: _xdg_data_home() / "omniread")
    config_dir: Path = field(default_factory=lambda: _xdg_config_home() / "omniread")
    db_path: Path = field(init=False)

    # Reading defaults, used until the reader changes them
    default_color_scheme: str = "dark"
    default_font_scale: int = 100  # percent, 50-200
    default_font_family: str = "serif"
    default_layout_mode: str = "single"

    library_start_dir: str = "~"

    # Two key events for the same page turn closer than this are one press
    nav_debounce_ms: int = 150

    log_level: str = "DEBUG"
    log_path: Path = field(init=False)

    def __post_init__(self) -> None:
        self.db_path = self.data_dir / "omniread.db"
        self.log_path = self.data_dir / "omniread.log"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def nav_debounce(self) -> float:
        return self.nav_debounce_ms / 1000.0


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    value = os.getenv(name, "").strip()
    if value.lower() in choices:
        return value.lower()
    if value.upper() in choices:
        return value.upper()
    return default


def _env_int(name: str, default: int, low: int, high: int) -> int:
    raw = os.getenv(name, "").strip()
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(low, min(high, value))


def load_config(env_path: Optional[Path] = None) -> AppConfig:
    """Load config from .env file. Searches CWD then config dir."""
    search_paths = [
        env_path,
        Path.cwd() / ".env",
        _xdg_config_home() / "omniread" / ".env",
        Path.home() / ".env",
    ]
    for p in search_paths:
        if p and p.exists():
            load_dotenv(p)
            break

    data_dir = os.getenv("OMNIREAD_DATA_DIR")
    kwargs = {"data_dir": Path(data_dir).expanduser()} if data_dir else {}

    defaults = AppConfig(**kwargs)
    return AppConfig(
        **kwargs,
        default_color_scheme=_env_choice(
            "OMNIREAD_COLOR_SCHEME", COLOR_SCHEMES, defaults.default_color_scheme
        ),
        default_font_scale=_env_int(
            "OMNIREAD_FONT_SCALE", defaults.default_font_scale, 50, 200
        ),
        default_font_family=os.getenv(
            "OMNIREAD_FONT_FAMILY", defaults.default_font_family
        ).strip()
        or defaults.default_font_family,
        default_layout_mode=_env_choice(
            "OMNIREAD_LAYOUT_MODE", LAYOUT_MODES, defaults.default_layout_mode
        ),
        nav_debounce_ms=_env_int(
            "OMNIREAD_NAV_DEBOUNCE_MS", defaults.nav_debounce_ms, 0, 2000
        ),
        log_level=_env_choice("OMNIREAD_LOG_LEVEL", LOG_LEVELS, defaults.log_level),
    )
