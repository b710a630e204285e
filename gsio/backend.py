"""Model backend client. Streams delta events and runs one-shot completions."""

import json
import logging
from collections.abc import AsyncIterator

from openai import AsyncOpenAI

from gsio.config import LLMSettings
from gsio.globals import log_exception
from gsio.stream import REASONING_DELTA, TEXT_DELTA, DeltaEvent

# Responses API event type that carries output text
RESPONSES_TEXT_EVENT = "response.output_text.delta"
# Responses API events that end the stream without a usable reply
RESPONSES_FAILURE_EVENTS = ("response.failed", "response.incomplete", "error")


class BackendError(Exception):
    """Raised when a backend call fails. The message always contains status=<code>."""

    def __init__(self, message: str, status: int | str = "unknown"):
        super().__init__(message)
        self.status = status


class StreamEventError(Exception):
    """A failure the server reported inside an otherwise healthy stream"""

    def __init__(self, event):
        self.event_type = event.type
        self.code = None
        if event.type == "error":
            self.code = getattr(event, "code", None)
            message = getattr(event, "message", None)
        else:
            response = getattr(event, "response", None)
            error = getattr(response, "error", None)
            details = getattr(response, "incomplete_details", None)
            if error is not None:
                self.code = getattr(error, "code", None)
                message = getattr(error, "message", None)
            else:
                message = getattr(details, "reason", None)
        label = f"{event.type} ({self.code})" if self.code else event.type
        super().__init__(f"{label}: {message or 'no details'}")


def error_status(e: BaseException) -> int | str:
    """Digs the HTTP status code out of an SDK or transport error"""
    for source in (e, getattr(e, "response", None), getattr(e, "__cause__", None)):
        if source is None:
            continue
        for attr in ("status_code", "status"):
            value = getattr(source, attr, None)
            if isinstance(value, int):
                return value
    return "unknown"


def _response_snippet(e: BaseException) -> str:
    data = getattr(e, "body", None)
    if data is None:
        return ""
    if isinstance(data, str):
        return data[:300]
    try:
        return json.dumps(data)[:300]
    except (TypeError, ValueError):
        return "[unserializable response body]"


class ChatBackend:
    """Wraps an AsyncOpenAI client configured from LLMSettings"""

    def __init__(self, settings: LLMSettings, client: AsyncOpenAI | None = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url or None,
        )

    def _fail(self, e: Exception, operation: str, model: str) -> BackendError:
        """Logs a warning and an error for the failure, then builds the error to raise"""
        status = error_status(e)
        parts = [
            f"status={status}",
            f"provider={self.settings.provider}",
            f"model={model}",
            f"baseUrl={self.settings.base_url or '(default)'}",
        ]
        snippet = _response_snippet(e)
        if snippet:
            parts.append(f"response={snippet}")
        trace = f"[{operation}] failed ({', '.join(parts)})"
        logging.warning(trace)
        log_exception(e, trace)
        return BackendError(f"{trace}: {e}", status)

    async def stream_reply(self, prompt: str) -> AsyncIterator[DeltaEvent]:
        """
        Streams the reply to a single user message.

        Every upstream event is yielded; only text fragments are tagged with
        TEXT_DELTA. Failures while connecting or mid-stream, including failure
        events reported inside a Responses stream, raise BackendError.
        """
        model = self.settings.model
        try:
            if self.settings.api_mode == "chat_completions":
                stream = await self.client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": self.settings.instructions},
                        {"role": "user", "content": prompt},
                    ],
                    stream=True,
                )
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta
                    reasoning = getattr(delta, "reasoning_content", None)
                    if reasoning:
                        yield DeltaEvent(REASONING_DELTA, reasoning)
                    if delta.content:
                        yield DeltaEvent(TEXT_DELTA, delta.content)
            else:
                stream = await self.client.responses.create(
                    model=model,
                    input=prompt,
                    instructions=self.settings.instructions,
                    stream=True,
                )
                async for event in stream:
                    if event.type == RESPONSES_TEXT_EVENT:
                        yield DeltaEvent(TEXT_DELTA, event.delta or "")
                    elif event.type in RESPONSES_FAILURE_EVENTS:
                        raise StreamEventError(event)
                    else:
                        yield DeltaEvent(event.type)
        except Exception as e:
            raise self._fail(e, "stream_reply", model) from e

    async def complete(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float = 0.2,
    ) -> str:
        """Runs a non-streaming chat completion and returns its text"""
        model = model or self.settings.summary_model
        try:
            resp = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=temperature,
            )
        except Exception as e:
            raise self._fail(e, "complete", model) from e
        if not resp.choices:
            return ""
        return (resp.choices[0].message.content or "").strip()

    async def close(self):
        await self.client.close()
