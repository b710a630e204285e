"""Keystroke handling: turns raw key presses into input buffer edits and submits."""

from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from enum import Enum

from prompt_toolkit.key_binding import KeyPress
from prompt_toolkit.keys import Keys


class InputMode(Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    SUBMITTING = "submitting"


@dataclass(frozen=True)
class Keystroke:
    """
    One decoded key press.

    `text` holds the character(s) for printable input, or the letter of a
    control chord (ctrl=True). `key` names non-printable keys such as
    "enter", "backspace", "up" and "down".
    """

    text: str = ""
    key: str | None = None
    ctrl: bool = False
    meta: bool = False
    shift: bool = False


# prompt_toolkit keys with a dedicated meaning
NAMED_KEYS = {
    Keys.ControlM: "enter",
    Keys.ControlJ: "enter",
    Keys.ControlH: "backspace",
    Keys.Up: "up",
    Keys.Down: "down",
}


class KeyTranslator:
    """
    Decodes prompt_toolkit KeyPress objects into Keystrokes.

    Terminals send Alt/Meta chords as Escape followed by the key in a single
    write, so an Escape marks the next key press of the same batch as a meta
    chord. An Escape that ends its batch was a lone key press and is dropped.
    """

    def feed(self, presses: Iterable[KeyPress]) -> Iterator[Keystroke]:
        """Translates one batch of key presses as read from the terminal"""
        escape_pending = False
        for press in presses:
            if press.key == Keys.Escape:
                escape_pending = True
                continue
            meta, escape_pending = escape_pending, False
            yield self.translate(press, meta)

    @staticmethod
    def translate(press: KeyPress, meta: bool = False) -> Keystroke:
        key = press.key
        if not isinstance(key, Keys):
            return Keystroke(text=key, meta=meta)
        if key == Keys.BracketedPaste:
            data = press.data.replace("\r\n", "\n").replace("\r", "\n")
            return Keystroke(text=data, meta=meta)
        if key in NAMED_KEYS:
            return Keystroke(key=NAMED_KEYS[key], meta=meta)
        name = key.value
        if name.startswith("s-"):
            return Keystroke(key=name[2:], meta=meta, shift=True)
        if name.startswith("c-"):
            return Keystroke(text=name[2:], ctrl=True, meta=meta)
        return Keystroke(key=name, meta=meta)


def printable(text: str) -> str:
    """Drops control characters, keeping line breaks and tabs from pastes"""
    return "".join(ch for ch in text if ch.isprintable() or ch in "\n\t")


class InputHistory:
    """Previously submitted inputs, browsable with Up/Down"""

    def __init__(self):
        self.entries: list[str] = []
        self.index: int | None = None
        self.draft: str = ""

    def record(self, text: str):
        if text and (not self.entries or self.entries[-1] != text):
            self.entries.append(text)
        self.index = None
        self.draft = ""

    def previous(self, current: str) -> str | None:
        """Steps back in history. Returns None when there is nowhere to go."""
        if not self.entries:
            return None
        if self.index is None:
            self.draft = current
            self.index = len(self.entries) - 1
        elif self.index > 0:
            self.index -= 1
        else:
            return None
        return self.entries[self.index]

    def next(self) -> str | None:
        """Steps forward; past the newest entry the saved draft comes back."""
        if self.index is None:
            return None
        if self.index < len(self.entries) - 1:
            self.index += 1
            return self.entries[self.index]
        self.index = None
        return self.draft


class InputHandler:
    """
    Input handling state machine.

    The mode is derived from shared state: SUBMITTING while a turn is in
    flight, COMPOSING while the buffer holds text, IDLE otherwise. Typing is
    accepted in every mode; submitting is not accepted while SUBMITTING.
    """

    def __init__(
        self,
        state,
        controller,
        on_change: Callable[[], None],
        commands=None,
    ):
        self.state = state
        self.controller = controller
        self.on_change = on_change
        self.commands = commands
        self.history = InputHistory()
        self.exit_requested: bool = False

    @property
    def mode(self) -> InputMode:
        if self.state.busy:
            return InputMode.SUBMITTING
        if self.state.input:
            return InputMode.COMPOSING
        return InputMode.IDLE

    def handle(self, stroke: Keystroke) -> bool:
        """Applies one keystroke. Returns True if anything changed."""
        if stroke.ctrl:
            return self._control_chord(stroke.text)
        if stroke.key == "enter":
            if stroke.meta or stroke.shift:
                return False
            return self.submit()
        if stroke.key == "backspace":
            return self._edit(self.state.input.backspace())
        if stroke.key in ("up", "down"):
            if self.state.busy:
                return False
            if stroke.key == "up":
                return self._recall(self.history.previous(self.state.input.text))
            return self._recall(self.history.next())
        if stroke.key is not None or stroke.meta or stroke.shift:
            return False
        text = printable(stroke.text)
        if not text:
            return False
        self.state.input.append(text)
        return self._edit(True)

    def submit(self) -> bool:
        """Hands the buffer to a command or the turn controller"""
        text = self.state.input.text
        if not text.strip() or self.state.busy:
            return False
        self.history.record(text)
        if self.commands and self.commands.handles(text):
            self.state.input.clear()
            self.on_change()
            self.commands.dispatch(text)
            return True
        return self.controller.submit(text) is not None

    def request_exit(self):
        self.exit_requested = True

    def _control_chord(self, letter: str) -> bool:
        if letter == "c":
            # Ctrl+C aborts a stream in flight, otherwise it exits
            if self.state.busy:
                if self.controller.cancel():
                    return True
                return bool(self.commands and self.commands.cancel())
            self.request_exit()
            return True
        if letter == "d" and not self.state.input:
            self.request_exit()
            return True
        if letter == "u" and self.state.input:
            self.state.input.clear()
            return self._edit(True)
        return False

    def _recall(self, text: str | None) -> bool:
        if text is None:
            return False
        self.state.input.replace(text)
        return self._edit(True)

    def _edit(self, changed: bool) -> bool:
        if changed:
            self.on_change()
        return changed
