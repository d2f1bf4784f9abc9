# Task board: configuration
# Defaults, overridden by config.yaml, overridden by TASKBOARD_* env vars.

import logging
import os
import sys
import yaml
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

CONFIG_PATH = Path.home() / ".config" / "taskboard" / "config.yaml"

ENV_OVERRIDES = {
    "TASKBOARD_DB": "db_path",
    "TASKBOARD_API_URL": "api_url",
    "TASKBOARD_API_SECRET": "api_secret",
    "TASKBOARD_LOG_LEVEL": "log_level",
}


@dataclass
class BoardConfig:
    """Runtime configuration for the board client and server."""

    # Server side
    db_path: str = "~/.local/share/taskboard/board.db"
    host: str = "127.0.0.1"
    port: int = 3000
    api_secret: str = ""

    # Client side
    api_url: str = "http://localhost:3000"
    summary_url: str = ""
    request_timeout: float = 5.0
    reconcile_attempts: int = 2

    log_level: str = "INFO"

    def resolve_paths(self):
        """Expand ~ in filesystem paths."""
        self.db_path = str(Path(self.db_path).expanduser())
        if not self.summary_url:
            self.summary_url = f"{self.api_url.rstrip('/')}/api/summary"

    def apply_env(self, environ=None):
        env = os.environ if environ is None else environ
        for var, attr in ENV_OVERRIDES.items():
            if env.get(var):
                setattr(self, attr, env[var])

    @classmethod
    def load(cls, path: Optional[str] = None, environ=None) -> "BoardConfig":
        """Load config from YAML file, falling back to defaults."""
        env = os.environ if environ is None else environ
        cfg_path = Path(path or env.get("TASKBOARD_CONFIG") or CONFIG_PATH)
        if cfg_path.exists():
            with open(cfg_path, "r") as f:
                data = yaml.safe_load(f) or {}
            cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        else:
            cfg = cls()
        cfg.apply_env(env)
        cfg.resolve_paths()
        return cfg


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
