import sys
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, NamedTuple, Optional, TextIO

from thermotray.config import effective_settings as config

log = logging.getLogger(__name__)


class Rendering(NamedTuple):
    """What the indicator shows: a tooltip label and a short icon text."""
    label: str
    icon_text: str


def render_label(reading: Optional[float], stale: bool = False, prefix: Optional[str] = None) -> str:
    """
    Formats the tooltip text, e.g. 'CPU: 42.0°C'.

    Before the first reading the value shows as '...'. A stale reading keeps
    its value and is only marked, so short restarts do not flicker.
    """
    prefix = prefix or config.DISPLAY_LABEL_PREFIX
    value = "..." if reading is None else f"{reading:.1f}"
    label = f"{prefix}: {value}°C"
    return f"{label} (stale)" if stale and reading is not None else label


def render_icon_text(reading: Optional[float]) -> str:
    """Formats the whole-degree text drawn into the icon."""
    return "?" if reading is None else f"{reading:.0f}"


class Display(ABC):
    """The indicator the supervisor's readings are shown on."""

    on_exit: Optional[Callable[[], None]] = None

    def bind_exit(self, callback: Callable[[], None]) -> None:
        """Registers the action run when the user asks the indicator to exit."""
        self.on_exit = callback

    def trigger_exit(self) -> None:
        if self.on_exit is not None:
            self.on_exit()

    @abstractmethod
    def update(self, reading: Optional[float], stale: bool) -> None:
        """Re-renders the indicator for the latest reading."""

    @abstractmethod
    def show_failure(self, message: str) -> None:
        """Shows an unrecoverable failure state."""

    def close(self) -> None:
        pass


class ConsoleIndicator(Display):
    """
    Prints the indicator to a text stream whenever its rendering changes.

    A rendering error keeps the last good rendering on screen instead of
    propagating into the caller. Typing one of EXIT_COMMANDS on the input
    stream is the indicator's exit action.
    """

    EXIT_COMMANDS = ("q", "quit", "exit")

    def __init__(self, stream: Optional[TextIO] = None, prefix: Optional[str] = None,
                 input_stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.prefix = prefix
        self.input_stream = input_stream
        self.last_rendering: Optional[Rendering] = None
        self.failed = False
        self._input_thread: Optional[threading.Thread] = None

    def bind_exit(self, callback: Callable[[], None]) -> None:
        super().bind_exit(callback)
        if self.input_stream is not None and self._input_thread is None:
            self._input_thread = threading.Thread(
                target=self._read_commands, daemon=True, name="IndicatorInputThread"
            )
            self._input_thread.start()

    def _read_commands(self) -> None:
        for line in iter(self.input_stream.readline, ""):
            if line.strip().lower() in self.EXIT_COMMANDS:
                log.info("Exit requested from the indicator.")
                self.trigger_exit()
                return

    def render(self, reading: Optional[float], stale: bool) -> Rendering:
        return Rendering(render_label(reading, stale, self.prefix), render_icon_text(reading))

    def update(self, reading: Optional[float], stale: bool) -> None:
        try:
            rendering = self.render(reading, stale)
        except Exception as e:
            log.error(f"Error rendering indicator: {e}")
            return
        if rendering == self.last_rendering:
            return
        self.last_rendering = rendering
        self._write(f"[{rendering.icon_text:>3}] {rendering.label}")

    def show_failure(self, message: str) -> None:
        self.failed = True
        self._write(f"[ ! ] {message}")

    def _write(self, line: str) -> None:
        print(line, file=self.stream, flush=True)
