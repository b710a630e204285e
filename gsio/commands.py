"""Command interactivity logic lives here."""

import asyncio

from gsio.backend import BackendError
from gsio.globals import log_exception
from gsio.summarizer import summarize_context

HELP_TEXT = (
    "Commands: !h/!help show this list | !reset start a fresh session | "
    "!sum/!summary refresh the rolling summary | !q/!quit exit | "
    "Ctrl+C aborts a response mid-stream"
)


class CommandController:
    """Handles and supports all command input"""

    def __init__(self, state, backend, on_change, on_exit):
        self.state = state
        self.backend = backend
        self.on_change = on_change
        self.on_exit = on_exit
        self.task: asyncio.Task | None = None

        # Command dict
        self.commands = {
            "!h": self.show_help,
            "!help": self.show_help,
            "!reset": self.reset_session,
            "!sum": self.summarize_session,
            "!summary": self.summarize_session,
            "!q": self.quit,
            "!quit": self.quit,
        }

    def handles(self, text: str) -> bool:
        return text.strip().lower() in self.commands

    def dispatch(self, text: str):
        """Runs a command. Commands are ignored while a turn is in flight."""
        if self.state.busy:
            return
        self.commands[text.strip().lower()]()

    def show_help(self):
        self.state.notice = HELP_TEXT
        self.on_change()

    def reset_session(self):
        """Simple session resetter."""
        self.state.log.reset()
        self.state.summary = ""
        self.state.error = None
        self.state.notice = "The current session has been reset."
        self.on_change()

    def quit(self):
        self.on_exit()

    def summarize_session(self):
        """Starts a rolling-summary refresh in the background"""
        if not len(self.state.log):
            self.state.notice = "The conversation is empty. There is nothing to summarize."
            self.on_change()
            return
        self.state.busy = True
        self.state.error = None
        self.state.notice = "Summarizing…"
        self.on_change()
        self.task = asyncio.get_running_loop().create_task(self._summarize())
        self.task.add_done_callback(self._on_task_done)

    async def _summarize(self):
        try:
            self.state.summary = await summarize_context(
                self.backend, self.state.summary, self.state.log.transcript()
            )
            self.state.notice = "Summary updated."
        except BackendError as e:
            self.state.error = str(e)
            self.state.notice = None
        except Exception as e:
            log_exception(e, "Error in summarize_session()")
            self.state.error = f"{type(e).__name__}: {e}"
            self.state.notice = None
        finally:
            self.state.busy = False
            self.on_change()

    def _on_task_done(self, task: asyncio.Task):
        if task.cancelled():
            self.state.busy = False
            self.state.notice = "Summary canceled."
            self.on_change()

    def cancel(self) -> bool:
        """Cancels a running summarization, if any"""
        if self.task is None or self.task.done():
            return False
        return self.task.cancel()
