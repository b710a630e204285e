"""Wires state, backend, view and keystrokes into the chat loop."""

import asyncio
from collections.abc import Iterable

from prompt_toolkit.input import Input, create_input
from prompt_toolkit.key_binding import KeyPress
from prompt_toolkit.output import Output, create_output
from rich.console import Console

from gsio.commands import CommandController
from gsio.config import LLMSettings
from gsio.globals import CONSOLE
from gsio.input_handler import InputHandler, KeyTranslator
from gsio.render import ChatView
from gsio.state import AppState
from gsio.turn import TurnController

# Seconds a lone Escape waits in the key parser before it is flushed
ESCAPE_TIMEOUT = 0.5


class ChatApp:
    """Houses the main application logic"""

    def __init__(
        self,
        settings: LLMSettings,
        backend,
        console: Console = CONSOLE,
        key_input: Input | None = None,
        output: Output | None = None,
    ):
        self.settings = settings
        self.backend = backend
        self.console = console
        self.key_input = key_input
        self.output = output
        self.state = AppState()

        # Every component redraws through the same view
        self.view = ChatView(self.state, console, model=settings.model)
        self.controller = TurnController(self.state, backend, self.view.refresh)
        self.commands = CommandController(
            self.state, backend, self.view.refresh, self.request_exit
        )
        self.input = InputHandler(
            self.state, self.controller, self.view.refresh, self.commands
        )
        self.translator = KeyTranslator()
        self._done: asyncio.Event | None = None

    def request_exit(self):
        self.input.request_exit()
        if self._done:
            self._done.set()

    def feed(self, presses: Iterable[KeyPress]):
        """Routes raw key presses through the input state machine"""
        for stroke in self.translator.feed(presses):
            self.input.handle(stroke)
            if self.input.exit_requested:
                self.request_exit()
                return

    async def run(self):
        """Runs until the user exits, then settles any work still in flight"""
        self._done = asyncio.Event()
        key_input = self.key_input or create_input()
        output = self.output or create_output()
        loop = asyncio.get_running_loop()
        flush_timer: asyncio.TimerHandle | None = None

        def flush_pending():
            self.feed(key_input.flush_keys())

        def keys_ready():
            nonlocal flush_timer
            self.feed(key_input.read_keys())
            if flush_timer:
                flush_timer.cancel()
            flush_timer = loop.call_later(ESCAPE_TIMEOUT, flush_pending)

        # Pastes arrive as one BracketedPaste key instead of keystrokes and Enters
        output.enable_bracketed_paste()
        output.flush()
        try:
            with self.view, key_input.raw_mode(), key_input.attach(keys_ready):
                await self._done.wait()
        finally:
            if flush_timer:
                flush_timer.cancel()
            output.disable_bracketed_paste()
            output.flush()

        self.controller.cancel()
        self.commands.cancel()
        await self.controller.wait()
        await self.backend.close()
        self.console.print("[yellow]✨ Farewell![/yellow]\n")
