"""Pytest configuration and shared fixtures."""

import asyncio
import io
from types import SimpleNamespace

import pytest
from rich.console import Console

from gsio.config import LLMSettings
from gsio.stream import TEXT_DELTA, DeltaEvent


class FakeBackend:
    """
    Stands in for ChatBackend.

    Yields one text delta per fragment. If `error` is set it is raised after
    `fail_after` fragments (or after all of them when fail_after is None).
    """

    def __init__(self, deltas=(), error=None, fail_after=None, summary="Summary"):
        self.deltas = list(deltas)
        self.error = error
        self.fail_after = fail_after
        self.summary = summary
        self.prompts: list[str] = []
        self.completions: list[dict] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def stream_reply(self, prompt):
        self.prompts.append(prompt)
        for i, fragment in enumerate(self.deltas):
            if self.error is not None and i == self.fail_after:
                raise self.error
            yield DeltaEvent(TEXT_DELTA, fragment)
            # Optionally park after the first fragment until the test releases us
            if i == 0 and self.gate is not None:
                await self.gate.wait()
        if self.error is not None and (
            self.fail_after is None or self.fail_after >= len(self.deltas)
        ):
            raise self.error

    async def complete(self, messages, model=None, temperature=0.2):
        self.completions.append(
            {"messages": messages, "model": model, "temperature": temperature}
        )
        return self.summary

    async def close(self):
        self.closed = True


class FakeStream:
    """Async-iterable stand-in for an openai AsyncStream"""

    def __init__(self, items, error=None):
        self.items = list(items)
        self.error = error

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self.items:
            yield item
        if self.error is not None:
            raise self.error


def chat_chunk(content=None, reasoning=None):
    """Builds a Chat Completions streaming chunk"""
    delta = SimpleNamespace(content=content, reasoning_content=reasoning)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


async def settle(steps: int = 5):
    """Lets pending tasks run up to their next real suspension point"""
    for _ in range(steps):
        await asyncio.sleep(0)


@pytest.fixture
def openai_settings():
    return LLMSettings(
        provider="openai",
        model="gpt-4o-mini",
        summary_model="gpt-4o-mini",
        base_url="",
        api_key="sk-test",
    )


@pytest.fixture
def ollama_settings():
    return LLMSettings(
        provider="ollama",
        model="llama3.1:8b",
        summary_model="llama3.1:8b",
        base_url="http://localhost:11434/v1",
        api_key="ollama",
    )


@pytest.fixture
def quiet_console():
    """A console that renders into memory instead of the terminal"""
    return Console(file=io.StringIO(), width=100, color_system=None)
