"""Runs one request/response cycle against the backend."""

import asyncio
import logging
from collections.abc import Callable

from gsio.backend import BackendError
from gsio.globals import log_exception
from gsio.state import ASSISTANT, USER, AppState
from gsio.stream import StreamAggregator


class TurnController:
    """
    Owns the busy flag and the in-progress stream state.

    Only the latest user message is sent to the backend on each turn; earlier
    messages stay in the log for display but are not part of the request.
    """

    def __init__(self, state: AppState, backend, on_change: Callable[[], None]):
        self.state = state
        self.backend = backend
        self.on_change = on_change
        self.task: asyncio.Task | None = None

    @property
    def busy(self) -> bool:
        return self.state.busy

    def submit(self, text: str) -> asyncio.Task | None:
        """
        Starts a turn for `text`. Empty text or a turn already in flight makes
        this a no-op that returns None. The user message and the cleared input
        buffer are visible before this returns.
        """
        if not text.strip() or self.state.busy:
            return None
        # Raises before any state changes when called outside an event loop
        loop = asyncio.get_running_loop()

        self.state.log.append(USER, text)
        self.on_change()
        self.state.input.clear()
        self.on_change()
        self.state.busy = True
        self.state.error = None
        self.state.notice = None
        self.state.stream.start()
        self.on_change()

        self.task = loop.create_task(self._run_turn())
        self.task.add_done_callback(self._on_task_done)
        return self.task

    async def _run_turn(self):
        prompt = self.state.log.latest_user_content()
        aggregator = StreamAggregator(self._on_delta)
        try:
            response = await aggregator.consume(self.backend.stream_reply(prompt))
        except asyncio.CancelledError:
            logging.warning("Turn canceled mid-stream; partial response discarded.")
            self._finish(notice="Response canceled.")
            raise
        except BackendError as e:
            # Already logged by the backend
            self._finish(error=str(e))
            return
        except Exception as e:
            log_exception(e, "Error in TurnController._run_turn()")
            self._finish(error=f"{type(e).__name__}: {e}")
            return

        self.state.log.append(ASSISTANT, response)
        self._finish()

    def _on_delta(self, text: str):
        self.state.stream.text = text
        self.on_change()

    def _finish(self, error: str | None = None, notice: str | None = None):
        """Clears the turn state and makes the prompt usable again"""
        self.state.stream.clear()
        self.state.busy = False
        self.state.error = error
        if notice:
            self.state.notice = notice
        self.on_change()

    def _on_task_done(self, task: asyncio.Task):
        # A task canceled before its first step never reaches _run_turn's handlers
        if task.cancelled() and task is self.task and self.state.busy:
            self._finish(notice="Response canceled.")

    def cancel(self) -> bool:
        """Cancels the in-flight turn, if any"""
        if self.task is None or self.task.done():
            return False
        return self.task.cancel()

    async def wait(self):
        """Waits for the in-flight turn to settle"""
        if self.task is None:
            return
        try:
            await self.task
        except asyncio.CancelledError:
            pass
