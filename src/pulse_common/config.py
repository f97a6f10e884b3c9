from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# Environment variable names
ENV_DATA_DIR = "PULSE_DATA_DIR"
ENV_USER = "PULSE_USER"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_DEV_MODE = "PULSE_DEV_MODE"

APP_DIR_NAME = "PulseApp"
DATA_SUBDIR = "UserData"
DEFAULT_LOG_LEVEL = "INFO"


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def default_data_dir() -> Path:
    """Per-user application data directory.

    Uses %LOCALAPPDATA% on Windows, then $XDG_DATA_HOME, then ~/.local/share.
    """
    base = _getenv("LOCALAPPDATA") or _getenv("XDG_DATA_HOME")
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / APP_DIR_NAME / DATA_SUBDIR


@dataclass(frozen=True)
class AppConfig:
    """
    Process configuration resolved from the environment.

    - data_dir: where user documents are stored (`PULSE_DATA_DIR`)
    - user_id: session user to start with (`PULSE_USER`), None for the default
    - log_level: stdlib level name (`LOG_LEVEL`)
    - dev_mode: human-readable console logs instead of JSON (`PULSE_DEV_MODE=1`)
    """

    data_dir: Path
    user_id: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    dev_mode: bool = False

    @classmethod
    def from_env(cls) -> "AppConfig":
        data_dir = _getenv(ENV_DATA_DIR)
        return cls(
            data_dir=Path(data_dir) if data_dir else default_data_dir(),
            user_id=_getenv(ENV_USER),
            log_level=(_getenv(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL) or DEFAULT_LOG_LEVEL).upper(),
            dev_mode=_getenv(ENV_DEV_MODE) == "1",
        )
