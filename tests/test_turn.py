"""
Turn controller and stream aggregator tests.

- Drives full turns against a fake backend
- Checks accumulation, commit atomicity and the busy guard
- Confirms only the latest user message is sent per turn
"""

import asyncio
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from conftest import FakeBackend, FakeStream, settle
from gsio.backend import BackendError, ChatBackend
from gsio.state import ASSISTANT, USER, AppState, Message
from gsio.stream import REASONING_DELTA, TEXT_DELTA, DeltaEvent, StreamAggregator
from gsio.turn import TurnController


def make_controller(backend, renders=None):
    state = AppState()

    def on_change():
        if renders is not None:
            renders.append(state.stream.text)

    return state, TurnController(state, backend, on_change)


async def run_turn(controller, text):
    task = controller.submit(text)
    if task is not None:
        await task
    return task


# 1. Stream Aggregator


def test_aggregator_exposes_every_prefix():
    """Each accepted fragment is visible before the next event is pulled."""
    fragments = ["Hi", " there", "!"]
    seen: list[str] = []

    async def source():
        for i, fragment in enumerate(fragments):
            # Everything before this fragment must already have been observed
            assert seen == ["".join(fragments[: k + 1]) for k in range(i)]
            yield DeltaEvent(TEXT_DELTA, fragment)

    aggregator = StreamAggregator(seen.append)
    result = asyncio.run(aggregator.consume(source()))

    assert result == "Hi there!"
    assert seen == ["Hi", "Hi there", "Hi there!"]
    assert aggregator.finished


def test_aggregator_ignores_other_event_kinds():
    async def source():
        yield DeltaEvent("response.created")
        yield DeltaEvent(REASONING_DELTA, "thinking...")
        yield DeltaEvent(TEXT_DELTA, "A")
        yield DeltaEvent(TEXT_DELTA, "")
        yield DeltaEvent(TEXT_DELTA, "B")

    seen: list[str] = []
    result = asyncio.run(StreamAggregator(seen.append).consume(source()))

    assert result == "AB"
    assert seen == ["A", "AB"]


def test_aggregator_propagates_source_failure():
    async def source():
        yield DeltaEvent(TEXT_DELTA, "partial")
        raise BackendError("[stream_reply] failed (status=500)", 500)

    aggregator = StreamAggregator()
    with pytest.raises(BackendError, match="status=500") as excinfo:
        asyncio.run(aggregator.consume(source()))

    assert excinfo.value.status == 500
    assert aggregator.text == "partial"
    assert not aggregator.finished


# 2. Turn Controller scenarios


def test_hello_turn_commits_user_and_assistant_messages():
    backend = FakeBackend(["Hi", " there", "!"])
    state, controller = make_controller(backend)

    asyncio.run(run_turn(controller, "Hello"))

    assert list(state.log) == [
        Message(USER, "Hello"),
        Message(ASSISTANT, "Hi there!"),
    ]
    assert not state.busy
    assert not state.stream.active
    assert state.stream.text == ""


def test_empty_submit_is_a_no_op():
    backend = FakeBackend(["never"])
    state, controller = make_controller(backend)
    state.input.replace("   ")

    async def scenario():
        return controller.submit("   ") or controller.submit("")

    assert asyncio.run(scenario()) is None
    assert len(state.log) == 0
    assert state.input.text == "   "
    assert backend.prompts == []
    assert not state.busy


def test_render_callback_sees_each_partial_response():
    renders: list[str] = []
    backend = FakeBackend(["Hi", " there", "!"])
    state, controller = make_controller(backend, renders)

    asyncio.run(run_turn(controller, "Hello"))

    partials = [text for text in renders if text]
    assert partials == ["Hi", "Hi there", "Hi there!"]


def test_input_cleared_before_response_arrives():
    backend = FakeBackend(["slow", " reply"])

    async def scenario():
        state, controller = make_controller(backend)
        backend.gate = asyncio.Event()
        state.input.replace("Question")
        task = controller.submit(state.input.text)

        # Synchronous effects are visible before the task gets to run
        assert state.input.text == ""
        assert list(state.log) == [Message(USER, "Question")]
        assert state.busy
        assert state.stream.active

        backend.gate.set()
        await task
        return state

    state = asyncio.run(scenario())
    assert state.log[-1] == Message(ASSISTANT, "slow reply")


def test_submit_while_busy_changes_nothing():
    backend = FakeBackend(["first", " answer"])

    async def scenario():
        state, controller = make_controller(backend)
        backend.gate = asyncio.Event()
        task = controller.submit("one")
        await settle()

        state.input.replace("draft")
        log_before = list(state.log)
        assert controller.submit("two") is None
        assert list(state.log) == log_before
        assert state.input.text == "draft"
        assert state.busy
        assert state.stream.text == "first"

        backend.gate.set()
        await task
        return state

    state = asyncio.run(scenario())
    assert backend.prompts == ["one"]
    assert [m.content for m in state.log] == ["one", "first answer"]


def test_submit_without_event_loop_leaves_state_untouched():
    state, controller = make_controller(FakeBackend(["Hi"]))
    state.input.replace("Hello")

    with pytest.raises(RuntimeError):
        controller.submit("Hello")

    assert len(state.log) == 0
    assert state.input.text == "Hello"
    assert not state.busy
    assert not state.stream.active


def test_mid_stream_failure_commits_nothing():
    error = BackendError("[stream_reply] failed (status=500, provider=openai)", 500)
    backend = FakeBackend(["half", " a", " reply"], error=error, fail_after=1)
    state, controller = make_controller(backend)

    asyncio.run(run_turn(controller, "Hello"))

    assert list(state.log) == [Message(USER, "Hello")]
    assert not state.busy
    assert state.stream.text == ""
    assert "status=500" in state.error


def test_next_turn_clears_previous_error():
    backend = FakeBackend([], error=BackendError("boom status=502", 502))
    state, controller = make_controller(backend)
    asyncio.run(run_turn(controller, "first"))
    assert state.error

    backend.error = None
    backend.deltas = ["ok"]
    asyncio.run(run_turn(controller, "second"))

    assert state.error is None
    assert [m.content for m in state.log] == ["first", "second", "ok"]


def test_unexpected_exception_is_logged_and_surfaced(caplog):
    backend = FakeBackend(["x"], error=RuntimeError("decoder exploded"), fail_after=1)
    state, controller = make_controller(backend)
    caplog.set_level(logging.WARNING)

    asyncio.run(run_turn(controller, "Hello"))

    assert not state.busy
    assert "decoder exploded" in state.error
    assert [r.levelno for r in caplog.records] == [logging.ERROR]


def test_only_latest_user_message_is_sent():
    """
    Each turn sends just the newest user message, not the whole history.
    Prior turns stay in the log for display only.
    """
    backend = FakeBackend(["Reply"])
    state, controller = make_controller(backend)

    asyncio.run(run_turn(controller, "My name is Ada."))
    asyncio.run(run_turn(controller, "What is my name?"))

    assert backend.prompts == ["My name is Ada.", "What is my name?"]
    assert len(state.log) == 4


# 3. Cancellation


def test_cancel_discards_partial_response():
    backend = FakeBackend(["partial", " rest"])

    async def scenario():
        state, controller = make_controller(backend)
        backend.gate = asyncio.Event()
        controller.submit("Hello")
        await settle()
        assert state.stream.text == "partial"

        assert controller.cancel()
        await controller.wait()
        return state, controller

    state, controller = asyncio.run(scenario())
    assert list(state.log) == [Message(USER, "Hello")]
    assert not state.busy
    assert state.notice == "Response canceled."
    assert not controller.cancel()


def test_cancel_before_first_step_still_clears_busy():
    backend = FakeBackend(["never"])

    async def scenario():
        state, controller = make_controller(backend)
        controller.submit("Hello")
        controller.cancel()
        await controller.wait()
        await settle()
        return state

    state = asyncio.run(scenario())
    assert not state.busy
    assert backend.prompts == []


# 4. End-to-end with the real backend client


def test_unauthorized_backend_surfaces_status(caplog, openai_settings):
    """A 401 is logged once as a warning and once as an error, and nothing is committed."""
    response = httpx.Response(
        401, request=httpx.Request("POST", "https://api.openai.com/v1/responses")
    )
    client = MagicMock()
    client.responses.create = AsyncMock(
        side_effect=openai.AuthenticationError(
            "bad request", response=response, body={"error": {"message": "invalid"}}
        )
    )
    backend = ChatBackend(openai_settings, client=client)
    state, controller = make_controller(backend)
    caplog.set_level(logging.WARNING)

    asyncio.run(run_turn(controller, "Hello"))

    assert "status=401" in state.error
    assert list(state.log) == [Message(USER, "Hello")]
    assert not state.busy
    levels = [r.levelno for r in caplog.records]
    assert levels.count(logging.WARNING) == 1
    assert levels.count(logging.ERROR) == 1


def test_real_backend_stream_commits_text_only(openai_settings):
    client = MagicMock()
    client.responses.create = AsyncMock(
        return_value=FakeStream(
            [
                SimpleNamespace(type="response.created"),
                SimpleNamespace(type="response.output_text.delta", delta="Hi"),
                SimpleNamespace(type="response.output_text.delta", delta=" there!"),
                SimpleNamespace(type="response.completed"),
            ]
        )
    )
    backend = ChatBackend(openai_settings, client=client)
    state, controller = make_controller(backend)

    asyncio.run(run_turn(controller, "Hello"))

    assert state.log[-1] == Message(ASSISTANT, "Hi there!")


def test_failed_responses_stream_commits_nothing(caplog, openai_settings):
    client = MagicMock()
    client.responses.create = AsyncMock(
        return_value=FakeStream(
            [
                SimpleNamespace(type="response.created"),
                SimpleNamespace(type="response.output_text.delta", delta="Hal"),
                SimpleNamespace(
                    type="response.failed",
                    response=SimpleNamespace(
                        error=SimpleNamespace(code="server_error", message="overloaded")
                    ),
                ),
            ]
        )
    )
    backend = ChatBackend(openai_settings, client=client)
    state, controller = make_controller(backend)
    caplog.set_level(logging.WARNING)

    asyncio.run(run_turn(controller, "Hello"))

    assert list(state.log) == [Message(USER, "Hello")]
    assert "status=unknown" in state.error
    assert "overloaded" in state.error
    assert not state.busy
    assert state.stream.text == ""
