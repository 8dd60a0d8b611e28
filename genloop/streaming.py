"""
Streaming relay.

Fans a model's chunk stream out to the caller's incremental callback and
to an accumulator, then builds the same ``ModelResponse`` a blocking call
would have returned. The generate loop never needs to know which path
produced a response.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from .schemas import (
    Candidate,
    FinishReason,
    GenerationUsage,
    Message,
    ModelResponse,
    ModelResponseChunk,
    Part,
    Role,
)

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[ModelResponseChunk], None]


@dataclass
class _CandidateBuffer:
    """Accumulated content of one candidate."""

    role: Role = Role.MODEL
    parts: list[Part] = field(default_factory=list)
    pending_text: list[str] = field(default_factory=list)
    finish_reason: Optional[FinishReason] = None

    def add(self, part: Part) -> None:
        # Adjacent text fragments collapse into a single text part.
        if part.text is not None:
            self.pending_text.append(part.text)
            return
        self._flush_text()
        self.parts.append(part)

    def _flush_text(self) -> None:
        if self.pending_text:
            self.parts.append(Part(text="".join(self.pending_text)))
            self.pending_text = []

    def to_candidate(self, index: int) -> Candidate:
        self._flush_text()
        return Candidate(
            index=index,
            message=Message(role=self.role, content=tuple(self.parts)),
            finish_reason=self.finish_reason or FinishReason.STOP,
        )


class StreamingRelay:
    """
    Observer that forwards chunks to a sink while accumulating them.

    Usage::

        relay = StreamingRelay(on_chunk)
        for chunk in model.stream(ctx, request):
            relay.on_chunk(chunk)
        response = relay.complete()
    """

    def __init__(self, sink: Optional[ChunkCallback] = None):
        self._sink = sink
        self._buffers: dict[int, _CandidateBuffer] = {}
        self._usage: Optional[GenerationUsage] = None
        self._chunk_count = 0
        self._completed = False

    def __call__(self, chunk: ModelResponseChunk) -> None:
        self.on_chunk(chunk)

    @property
    def chunk_count(self) -> int:
        return self._chunk_count

    @property
    def text(self) -> str:
        """Text accumulated so far for the first candidate."""
        buffer = self._buffers.get(0)
        if buffer is None:
            return ""
        done = "".join(p.text for p in buffer.parts if p.text is not None)
        return done + "".join(buffer.pending_text)

    def on_chunk(self, chunk: ModelResponseChunk) -> None:
        """Forward ``chunk`` to the sink and add it to the accumulator."""
        if self._completed:
            raise RuntimeError("Cannot relay a chunk after the stream completed")

        self._chunk_count += 1
        if self._sink is not None:
            self._sink(chunk)

        buffer = self._buffers.setdefault(chunk.index, _CandidateBuffer())
        buffer.role = chunk.role
        for part in chunk.content:
            buffer.add(part)
        if chunk.finish_reason is not None:
            buffer.finish_reason = chunk.finish_reason
        if chunk.usage is not None:
            self._usage = chunk.usage

    def relay(self, chunks: Iterable[ModelResponseChunk]) -> ModelResponse:
        """Consume a whole chunk stream and return the aggregated response."""
        for chunk in chunks:
            self.on_chunk(chunk)
        return self.complete()

    def complete(self) -> ModelResponse:
        """Finalize the stream into a ``ModelResponse``."""
        self._completed = True
        if not self._buffers:
            # An empty stream still yields one (empty) candidate.
            self._buffers[0] = _CandidateBuffer()

        candidates = tuple(
            self._buffers[index].to_candidate(index) for index in sorted(self._buffers)
        )
        logger.debug(
            "Stream completed: %d chunks, %d candidates",
            self._chunk_count,
            len(candidates),
        )
        return ModelResponse(candidates=candidates, usage=self._usage)
