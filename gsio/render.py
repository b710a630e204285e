"""Builds the chat view from application state and keeps it on screen."""

from rich.cells import cell_len
from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from gsio.globals import CONSOLE
from gsio.state import USER, AppState

HEADER = "🧠 GPT Chat (press Enter to send)"

# Role label and color
ROLE_STYLES = {
    "user": ("You: ", "green"),
    "assistant": ("AI: ", "yellow"),
}
STREAM_STYLE = "yellow"
PROMPT_MARKER = ">"
PROMPT_STYLE = "magenta"


def message_line(role: str, content: str) -> Text:
    label, color = ROLE_STYLES.get(role, ROLE_STYLES[USER])
    return Text.assemble((label, f"bold {color}"), (content, color))


def status_line(state: AppState, model: str = "") -> Text:
    status = Text.assemble((" ", "cyan"), f"Turn: {state.log.count_turns()}")
    if model:
        status.append(f" | Model: {model}")
    if state.busy:
        status.append(" | thinking…", style="italic")
    status.stylize("dim")
    return status


def render_transcript(state: AppState, header: str = HEADER) -> list[Text]:
    """The header followed by every committed message"""
    parts = [Text(header, style="cyan"), Text()]
    for message in state.log:
        parts.append(message_line(message.role, message.content))
        parts.append(Text())
    return parts


def text_rows(text: str, width: int | None = None) -> int:
    """Terminal rows a block of text takes up once wrapped to `width`"""
    lines = text.split("\n")
    if not width:
        return len(lines)
    return sum(max(1, -(-cell_len(line) // width)) for line in lines)


def stream_tail(text: str, max_rows: int | None = None, width: int | None = None) -> str:
    """Keeps the trailing lines of a streaming reply that fit in `max_rows`"""
    if max_rows is None:
        return text
    kept: list[str] = []
    rows = 0
    for line in reversed(text.split("\n")):
        rows += text_rows(line, width)
        if rows > max_rows and kept:
            break
        kept.append(line)
    return "\n".join(reversed(kept))


def render_footer(
    state: AppState,
    model: str = "",
    max_stream_rows: int | None = None,
    width: int | None = None,
) -> Group:
    """Everything below the transcript: the streaming reply, messages, status and prompt"""
    parts: list = []

    if state.stream.active:
        parts.append(
            Text(stream_tail(state.stream.text, max_stream_rows, width), style=STREAM_STYLE)
        )

    if state.summary:
        parts.append(Text.assemble(("Summary: ", "bold"), state.summary, style="dim"))
    if state.notice:
        parts.append(Text(state.notice, style="dim"))
    if state.error:
        parts.append(Text(f"❌ {state.error}", style="bold red"))

    parts.append(Text())
    parts.append(status_line(state, model))
    parts.append(Text.assemble((PROMPT_MARKER, PROMPT_STYLE), " ", state.input.text))
    return Group(*parts)


def render_view(state: AppState, header: str = HEADER, model: str = "") -> Group:
    """
    Projects the application state onto a renderable.

    Pure: the same state always renders the same way and nothing is mutated.
    """
    return Group(*render_transcript(state, header), render_footer(state, model))


class ChatView:
    """
    Keeps the chat on screen.

    Committed messages are printed once, above a rich Live region that holds
    only the footer. The streaming reply inside the footer is cut down to its
    last lines so the region never grows past the terminal height.

    Refreshing is manual: every state mutation calls refresh(), which redraws
    immediately instead of waiting for a timer.
    """

    def __init__(
        self,
        state: AppState,
        console: Console = CONSOLE,
        header: str = HEADER,
        model: str = "",
    ):
        self.state = state
        self.console = console
        self.header = header
        self.model = model
        self.live: Live | None = None
        self.renders: int = 0
        self.printed: int = 0

    def footer(self) -> Group:
        width, height = self.console.size
        state = self.state
        # Spacer and status line, plus the rows the stream shares the footer with
        shared = [f"{PROMPT_MARKER} {state.input.text}"]
        if state.summary:
            shared.append(f"Summary: {state.summary}")
        if state.notice:
            shared.append(state.notice)
        if state.error:
            shared.append(f"❌ {state.error}")
        reserved = 2 + sum(text_rows(text, width) for text in shared)
        limit = max(height - reserved, 1)
        return render_footer(state, self.model, limit, width)

    def print_committed(self):
        """Prints messages committed since the last call"""
        if len(self.state.log) < self.printed:
            # The log was reset, earlier output stays in the scrollback
            self.printed = len(self.state.log)
        for message in list(self.state.log)[self.printed :]:
            self.console.print(message_line(message.role, message.content))
            self.console.print()
        self.printed = len(self.state.log)

    def start(self):
        """Prints the header and history, then starts the live footer."""
        self.console.print(Text(self.header, style="cyan"))
        self.console.print()
        self.print_committed()
        self.live = Live(
            self.footer(),
            console=self.console,
            screen=False,
            auto_refresh=False,
        )
        self.live.start()

    def stop(self):
        if self.live:
            self.print_committed()
            self.live.update(self.footer(), refresh=True)
            self.live.stop()
            self.live = None

    def refresh(self):
        """Redraws the view from the current state"""
        self.renders += 1
        if self.live:
            self.print_committed()
            self.live.update(self.footer(), refresh=True)

    def __enter__(self) -> "ChatView":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
