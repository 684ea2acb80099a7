# system/config.py
"""
Pulseboard Config — v1.0.0

Two layers:
- data/config.json: env / debug (written with defaults if missing or corrupt)
- environment (.env loaded through python-dotenv first): secrets and knobs

PULSE_ENV, when set, overrides the env from config.json.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent.parent
CONFIG_DIR = Path(os.getenv("PULSE_DATA_DIR", "data"))

DEFAULT_FILE_CONFIG = {"env": "development", "debug": False}


def load_env_file(tag: str = "Config") -> bool:
    """
    Load .env from the project root, falling back to the working directory.

    Returns True if a file was loaded.
    """
    for env_path in (BASE_DIR / ".env", Path.cwd() / ".env"):
        if env_path.exists():
            load_dotenv(env_path, override=False)
            print(f"[{tag}] Loaded .env from {env_path}", flush=True)
            return True
    print(f"[{tag}] No .env file found; using process environment", file=sys.stderr, flush=True)
    return False


def _read_file_config(cfg_path: Path) -> dict:
    if not cfg_path.exists() or cfg_path.stat().st_size == 0:
        cfg_path.parent.mkdir(parents=True, exist_ok=True)
        with cfg_path.open("w", encoding="utf-8") as f:
            json.dump(DEFAULT_FILE_CONFIG, f, indent=2)
        return dict(DEFAULT_FILE_CONFIG)

    try:
        with cfg_path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError:
        raw = dict(DEFAULT_FILE_CONFIG)
        with cfg_path.open("w", encoding="utf-8") as f:
            json.dump(raw, f, indent=2)

    return {
        "env": str(raw.get("env", DEFAULT_FILE_CONFIG["env"])),
        "debug": bool(raw.get("debug", DEFAULT_FILE_CONFIG["debug"])),
    }


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        print(f"[Config] Ignoring non-integer {name}={value!r}", file=sys.stderr, flush=True)
        return default


@dataclass
class Config:
    data_dir: Path
    env: str = "development"
    debug: bool = False

    edit_password: Optional[str] = field(default=None, repr=False)
    cron_secret: Optional[str] = field(default=None, repr=False)
    cursor_api_key: Optional[str] = field(default=None, repr=False)

    usage_refresh_seconds: int = 3600
    api_url: str = "http://127.0.0.1:5000"
    poll_seconds: int = 30

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None, load_env: bool = True) -> "Config":
        if load_env:
            load_env_file()

        data_dir = Path(data_dir or os.getenv("PULSE_DATA_DIR") or CONFIG_DIR)
        file_cfg = _read_file_config(data_dir / "config.json")

        return cls(
            data_dir=data_dir,
            env=os.getenv("PULSE_ENV") or file_cfg["env"],
            debug=file_cfg["debug"],
            edit_password=os.getenv("EDIT_PASSWORD") or None,
            cron_secret=os.getenv("CRON_SECRET") or None,
            cursor_api_key=os.getenv("CURSOR_API_KEY") or None,
            usage_refresh_seconds=_int_env("USAGE_REFRESH_SECONDS", 3600),
            api_url=os.getenv("PULSE_API_URL", "http://127.0.0.1:5000"),
            poll_seconds=_int_env("PULSE_POLL_SECONDS", 30),
        )
