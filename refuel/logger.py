"""Event log for Refuel."""

import json
from collections import deque
from datetime import datetime
from typing import Callable, Optional

from .config import CONFIG


class Logger:
    """Timestamped event lines to stdout, an optional file and an optional callback.

    Lines look like ``[2024-05-01T10:00:00] MODE | {"from": "idle", ...}``.
    The most recent entries are also kept in memory (``recent``) so a late
    subscriber such as the debug GUI can catch up.
    """

    def __init__(self, log_path: Optional[str] = None,
                 callback: Optional[Callable[[str, Optional[dict]], None]] = None,
                 echo: bool = True, backlog: Optional[int] = None):
        self.log_path = log_path
        self.callback = callback
        self.echo = echo
        self.recent: deque = deque(maxlen=CONFIG["log_backlog"] if backlog is None else backlog)
        self.file = open(log_path, "a") if log_path else None
        if self.file:
            rule = "=" * 60
            self.file.write(f"\n{rule}\nRefuel session {datetime.now().isoformat()}\n{rule}\n\n")
            self.file.flush()

    @staticmethod
    def format(message: str, data: Optional[dict] = None) -> str:
        line = f"[{datetime.now().isoformat(timespec='seconds')}] {message}"
        if data:
            line += f" | {json.dumps(data, default=str)}"
        return line

    def log(self, message: str, data: Optional[dict] = None) -> str:
        """Record one event; returns the formatted line"""
        line = self.format(message, data)
        self.recent.append((message, data))
        if self.echo:
            print(line)
        if self.file:
            self.file.write(line + "\n")
            self.file.flush()
        if self.callback:
            self.callback(message, data)
        return line

    def close(self):
        if self.file:
            self.file.close()
            self.file = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
