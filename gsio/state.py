"""Application state: the conversation log, input buffer and stream state."""

from dataclasses import dataclass, field

USER = "user"
ASSISTANT = "assistant"


@dataclass(frozen=True)
class Message:
    role: str
    content: str


class ConversationLog:
    """Append-only record of finalized messages, in display order"""

    def __init__(self):
        self._messages: list[Message] = []

    def __iter__(self):
        return iter(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def append(self, role: str, content: str) -> Message:
        """Append a finalized message to the log"""
        if role not in (USER, ASSISTANT):
            raise ValueError(f"Unknown message role: {role!r}")
        message = Message(role, content)
        self._messages.append(message)
        return message

    def latest_user_content(self) -> str:
        """Returns the content of the most recent user message"""
        for message in reversed(self._messages):
            if message.role == USER:
                return message.content
        return ""

    def count_turns(self) -> int:
        """Calculates and returns the turn number"""
        return sum(1 for m in self._messages if m.role == USER)

    def transcript(self) -> str:
        """Plain-text rendering of the log, used for summarization"""
        return "\n".join(f"{m.role}: {m.content}" for m in self._messages)

    def reset(self):
        """Reset for a fresh session"""
        self._messages = []


class InputBuffer:
    """Pending outgoing message text"""

    def __init__(self, text: str = ""):
        self.text = text

    def __bool__(self) -> bool:
        return bool(self.text)

    def append(self, chars: str):
        self.text += chars

    def backspace(self) -> bool:
        """Removes the trailing character. Returns False if there was none."""
        if not self.text:
            return False
        self.text = self.text[:-1]
        return True

    def clear(self):
        self.text = ""

    def replace(self, text: str):
        self.text = text


@dataclass
class StreamState:
    """Text accumulated by the active turn, not yet part of the log"""

    text: str = ""
    active: bool = False

    def start(self):
        self.text = ""
        self.active = True

    def clear(self):
        self.text = ""
        self.active = False


@dataclass
class AppState:
    log: ConversationLog = field(default_factory=ConversationLog)
    input: InputBuffer = field(default_factory=InputBuffer)
    stream: StreamState = field(default_factory=StreamState)
    busy: bool = False
    error: str | None = None
    notice: str | None = None
    summary: str = ""
