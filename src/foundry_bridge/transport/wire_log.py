"""Verbatim websocket traffic log, one file per process session."""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

RULE = "=" * 40


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class WireLogger:
    """
    Append every inbound and outbound frame to a log file.

    Disabled when no directory is given. Each write is flushed straight away
    so the file can be followed with ``tail -f``.
    """

    def __init__(self, directory: Path | None = None):
        self.session_id = self._generate_session_id()
        self.path: Path | None = None

        if directory is None:
            logger.debug("Wire logging disabled (no directory configured)")
            return

        try:
            directory.mkdir(parents=True, exist_ok=True)
            self.path = directory / f"ws_session_{self.session_id}.log"
            self._append(
                "=== WebSocket Session Started ===\n"
                f"Session ID: {self.session_id}\n"
                f"Timestamp: {_timestamp()}\n"
                f"{RULE}\n\n"
            )
            logger.info(f"Wire log: {self.path}")
        except OSError as e:
            logger.error(f"Failed to initialize wire log in {directory}: {e}")
            self.path = None

    @staticmethod
    def _generate_session_id() -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")
        return f"{stamp}_{secrets.token_hex(3)}"

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def _append(self, text: str) -> None:
        if self.path is None:
            return
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(text)

    def outbound(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        self._append(f"[{_timestamp()}] >>> OUTBOUND >>>\n{message}\n\n")

    def inbound(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        self._append(f"[{_timestamp()}] <<< INBOUND <<<\n{message}\n\n")

    def close(self) -> None:
        """Write the footer and stop logging."""
        if self.path is None:
            return
        self._append(
            f"\n{RULE}\n=== WebSocket Session Ended ===\nTimestamp: {_timestamp()}\n"
        )
        self.path = None
