"""Bridge configuration loaded from the environment."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from foundry_bridge.transport.types import TransportConfig

CREDENTIALS_ENV = "FOUNDRY_CREDENTIALS"
WEBSOCKETS_DIRECTORY_ENV = "WEBSOCKETS_DIRECTORY"
LOG_LEVEL_ENV = "FOUNDRY_BRIDGE_LOG_LEVEL"

# Relative to the working directory
DEFAULT_CREDENTIALS_PATH = Path("config") / "foundry_credentials.json"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_credentials_path(env: Mapping[str, str], cwd: Path) -> Path:
    """FOUNDRY_CREDENTIALS when set, else config/foundry_credentials.json under cwd."""
    configured = env.get(CREDENTIALS_ENV)
    if configured:
        return Path(configured)
    return cwd / DEFAULT_CREDENTIALS_PATH


@dataclass
class BridgeConfig:
    """Everything the bridge needs to start."""

    credentials_path: Path
    wire_log_directory: Path | None = None
    log_level: str = "INFO"
    transport: TransportConfig = field(default_factory=TransportConfig)

    def __post_init__(self) -> None:
        self.log_level = self.log_level.upper()
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> "BridgeConfig":
        """Create from environment variables."""
        env = os.environ if env is None else env
        cwd = Path.cwd() if cwd is None else cwd

        wire_dir = env.get(WEBSOCKETS_DIRECTORY_ENV)
        return cls(
            credentials_path=resolve_credentials_path(env, cwd),
            wire_log_directory=Path(wire_dir) if wire_dir else None,
            log_level=env.get(LOG_LEVEL_ENV) or "INFO",
        )
