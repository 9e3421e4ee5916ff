"""
Human-readable output for the CLI.

Lines go to stdout by default, or to a file when one is given; with
``echo`` set they go to both.
"""

import sys
from pathlib import Path
from typing import Optional, TextIO


class OutputWriter:
    def __init__(
        self,
        path: Optional[Path] = None,
        echo: bool = False,
        console: Optional[TextIO] = None,
    ) -> None:
        self._console = console or sys.stdout
        self._file: Optional[TextIO] = None
        self._echo = echo
        if path is not None:
            self._file = Path(path).open("w", encoding="utf-8")

    def write(self, text: str) -> None:
        if self._file is None:
            self._console.write(text)
            return
        self._file.write(text)
        if self._echo:
            self._console.write(text)

    def line(self, text: str = "") -> None:
        self.write(f"{text}\n")

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "OutputWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
