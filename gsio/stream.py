"""Accumulates streamed delta events into a single growing response."""

from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass

# The only event kind that contributes to the response text
TEXT_DELTA = "output_text_delta"
REASONING_DELTA = "reasoning_delta"


@dataclass(frozen=True)
class DeltaEvent:
    kind: str
    delta: str = ""


class StreamAggregator:
    """
    Concatenates text deltas in arrival order.

    `on_update` receives the accumulated text after every accepted fragment,
    before the next event is pulled from the source, so a renderer always sees
    each intermediate value. Errors raised by the source propagate unchanged.
    """

    def __init__(self, on_update: Callable[[str], None] | None = None):
        self.on_update = on_update
        self.text: str = ""
        self.finished: bool = False

    def accept(self, event: DeltaEvent) -> bool:
        """Applies one event. Returns True if the text grew."""
        if event.kind != TEXT_DELTA or not event.delta:
            return False
        self.text += event.delta
        if self.on_update:
            self.on_update(self.text)
        return True

    async def consume(self, events: AsyncIterable[DeltaEvent]) -> str:
        """Drains the event source and returns the complete response."""
        self.text = ""
        self.finished = False
        async for event in events:
            self.accept(event)
        self.finished = True
        return self.text
