"""
Non-blocking single-key input for the terminal runner.

Works on Windows (msvcrt) and on macOS / Linux (select + termios).
"""

import sys
from typing import Optional


class CrossPlatformKeypress:
    """Polls the terminal for a single key press without blocking."""

    def __init__(self):
        self.platform = sys.platform.lower()
        if self.platform == "win32":
            self._setup_windows()
        elif self.platform.startswith(("darwin", "linux")):
            self._setup_unix()
        else:
            raise RuntimeError(f"Unsupported platform: {self.platform}")

    def _setup_windows(self):
        import msvcrt
        self._msvcrt = msvcrt

    def _setup_unix(self):
        import select
        import termios
        import tty
        self._select = select
        self._termios = termios
        self._tty = tty
        self._stdin_fd = sys.stdin.fileno()

    def key_pressed(self) -> bool:
        if self.platform == "win32":
            return bool(self._msvcrt.kbhit())
        return self._select.select([sys.stdin], [], [], 0) == ([sys.stdin], [], [])

    def read_key(self) -> Optional[str]:
        if self.platform == "win32":
            try:
                return self._msvcrt.getwch()
            except (UnicodeDecodeError, OSError):
                return None
        old_settings = self._termios.tcgetattr(self._stdin_fd)
        try:
            self._tty.setraw(self._stdin_fd)
            return sys.stdin.read(1)
        except (OSError, UnicodeDecodeError):
            return None
        finally:
            self._termios.tcsetattr(self._stdin_fd, self._termios.TCSADRAIN, old_settings)

    def poll(self) -> Optional[str]:
        """Return the pressed key, lower-cased, or None."""
        if not self.key_pressed():
            return None
        key = self.read_key()
        return key.lower() if key else None
