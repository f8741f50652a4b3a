# buildlog.py
from __future__ import annotations

import threading
from typing import List

from .ui.console import get_console


class BuildLog:
    """
    The log of one parent build.

    Every line is kept (so callers can show or assert on the narration)
    and echoed through the global console, prefixed with the build name.
    """

    def __init__(self, build_name: str, echo: bool = True):
        self.build_name = build_name
        self.echo = echo
        self._lines: List[str] = []
        self._lock = threading.Lock()

    def println(self, message: str = "") -> None:
        with self._lock:
            self._lines.append(message)
        if self.echo:
            get_console().print_build_line(self.build_name, message)

    @staticmethod
    def hyperlink(url: str, text: str) -> str:
        return f"{text} ({url})" if url else text

    @property
    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)
