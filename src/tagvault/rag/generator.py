"""Streaming generation orchestrator: retrieval → prompt → streamed completion.

State machine of one stream:

    IDLE → RETRIEVING (tag given) → PROMPT_ASSEMBLED → STREAMING
         → COMPLETED | FAILED | CANCELLED

Nothing runs until the caller starts iterating. A stream is single-use;
asking the same question again means calling ``generate_stream()`` again,
which re-runs retrieval.

Fragments are produced on whatever execution context the consumer iterates
from, not the one that created the stream. The creator's ``TraceContext`` is
therefore captured when the stream is built and re-bound only around the
stream's own log calls, so the consumer's context is left as it found it.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Iterator

from tagvault.errors import ModelError, TagvaultError, ValidationError
from tagvault.observability import TraceContext
from tagvault.rag import llm_client
from tagvault.rag.retriever import RetrievalAssembler, RetrievalContext

logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    IDLE = "idle"
    RETRIEVING = "retrieving"
    PROMPT_ASSEMBLED = "prompt_assembled"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


def build_prompt(system_prompt: str, context: RetrievalContext | None, message: str) -> list[dict]:
    """Return the ordered chat messages for one generation call.

    Without a retrieval context the prompt is the user message alone.
    """
    if context is None:
        return [{"role": "user", "content": message}]
    system = system_prompt.replace("{documents}", context.text)
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": message},
    ]


class _StreamBase:
    """State, trace snapshot and lifecycle logging shared by both stream flavours."""

    def __init__(
        self,
        retriever: RetrievalAssembler,
        model: str,
        tag: str | None,
        message: str,
        system_prompt: str,
        temperature: float,
        trace: TraceContext,
    ) -> None:
        self._retriever = retriever
        self.model = model
        self.tag = tag
        self.message = message
        self._system_prompt = system_prompt
        self._temperature = temperature
        self.trace = trace
        self.state = StreamState.IDLE
        self.fragments = 0
        self.context: RetrievalContext | None = None
        self._upstream: Any = None
        self._started = False

    def _claim(self) -> None:
        if self._started:
            raise RuntimeError("ResponseStream can only be consumed once; call generate_stream() again")
        self._started = True

    def _log(self, level: int, msg: str, *args: Any, exc_info: bool = False) -> None:
        with self.trace.bound():
            logger.log(level, msg, *args, exc_info=exc_info)

    def _assemble(self, context: RetrievalContext | None) -> list[dict]:
        self.context = context
        messages = build_prompt(self._system_prompt, context, self.message)
        self.state = StreamState.PROMPT_ASSEMBLED
        self._log(
            logging.INFO,
            "BIZ_PROCESS: op=generateStream, model=%s, tag=%s, found=%s",
            self.model, self.tag, context.found if context else "n/a",
        )
        return messages

    def _on_complete(self) -> None:
        self.state = StreamState.COMPLETED
        self._log(
            logging.INFO,
            "BIZ_END: op=generateStream, model=%s, tag=%s, fragments=%d",
            self.model, self.tag, self.fragments,
        )

    def _on_cancel(self) -> None:
        self.state = StreamState.CANCELLED
        self._log(
            logging.INFO,
            "BIZ_WARN: op=generateStream, reason=cancelled, model=%s, fragments=%d",
            self.model, self.fragments,
        )

    def _on_error(self, exc: BaseException) -> TagvaultError:
        """Record the failure and return the error the consumer should see."""
        self.state = StreamState.FAILED
        self._log(
            logging.ERROR,
            "BIZ_ERROR: op=generateStream, model=%s, tag=%s, fragments=%d",
            self.model, self.tag, self.fragments, exc_info=True,
        )
        if isinstance(exc, TagvaultError):
            return exc
        return ModelError(
            f"Streaming completion failed: {exc}", operation="generateStream", target=self.model
        )


class ResponseStream(_StreamBase):
    """Lazy, single-use iterator of response fragments."""

    def __iter__(self) -> Iterator[str]:
        self._claim()
        return self._run()

    def _run(self) -> Iterator[str]:
        self._log(logging.INFO, "BIZ_BEGIN: op=generateStream, model=%s, tag=%s", self.model, self.tag)
        try:
            context = None
            if self.tag is not None:
                self.state = StreamState.RETRIEVING
                context = self._retriever.retrieve(self.tag, self.message)
            messages = self._assemble(context)

            self.state = StreamState.STREAMING
            self._upstream = llm_client.stream_completion(
                self.model, messages, temperature=self._temperature
            )
            for chunk in self._upstream:
                text = llm_client.delta_text(chunk)
                if text:
                    self.fragments += 1
                    yield text
        except GeneratorExit:
            self._close_upstream()
            self._on_cancel()
            raise
        except Exception as exc:
            err = self._on_error(exc)
            if err is exc:
                raise
            raise err from exc
        self._on_complete()

    def _close_upstream(self) -> None:
        close = getattr(self._upstream, "close", None)
        if callable(close):
            close()


class AsyncResponseStream(_StreamBase):
    """asyncio twin of ResponseStream; retrieval runs in a worker thread."""

    def __aiter__(self) -> AsyncIterator[str]:
        self._claim()
        return self._run()

    async def _run(self) -> AsyncIterator[str]:
        self._log(logging.INFO, "BIZ_BEGIN: op=generateStream, model=%s, tag=%s", self.model, self.tag)
        try:
            context = None
            if self.tag is not None:
                self.state = StreamState.RETRIEVING
                context = await asyncio.to_thread(self._retriever.retrieve, self.tag, self.message)
            messages = self._assemble(context)

            self.state = StreamState.STREAMING
            self._upstream = await llm_client.astream_completion(
                self.model, messages, temperature=self._temperature
            )
            async for chunk in self._upstream:
                text = llm_client.delta_text(chunk)
                if text:
                    self.fragments += 1
                    yield text
        except (GeneratorExit, asyncio.CancelledError):
            await self._close_upstream()
            self._on_cancel()
            raise
        except Exception as exc:
            err = self._on_error(exc)
            if err is exc:
                raise
            raise err from exc
        self._on_complete()

    async def _close_upstream(self) -> None:
        aclose = getattr(self._upstream, "aclose", None)
        if callable(aclose):
            await aclose()


class StreamingGenerator:
    """Build response streams for chat requests.

    Args:
        retriever: Retrieval assembler used when a tag is given.
        default_model: Model used when the caller passes a blank one.
        system_prompt: Template with a ``{documents}`` placeholder.
        temperature: Sampling temperature for every completion.
    """

    def __init__(
        self,
        retriever: RetrievalAssembler,
        default_model: str,
        system_prompt: str,
        temperature: float = 0.7,
    ) -> None:
        self._retriever = retriever
        self.default_model = default_model
        self._system_prompt = system_prompt
        self._temperature = temperature

    def generate_stream(
        self,
        model: str | None,
        tag: str | None,
        message: str,
        trace: TraceContext | None = None,
    ) -> ResponseStream:
        """Return a lazy stream answering *message*.

        *tag* ``None`` skips retrieval; a blank tag retrieves across all tags.

        Raises:
            ValidationError: If *message* is blank.
        """
        return ResponseStream(*self._arguments(model, tag, message, trace))

    def agenerate_stream(
        self,
        model: str | None,
        tag: str | None,
        message: str,
        trace: TraceContext | None = None,
    ) -> AsyncResponseStream:
        """Async variant of generate_stream()."""
        return AsyncResponseStream(*self._arguments(model, tag, message, trace))

    def _arguments(
        self, model: str | None, tag: str | None, message: str, trace: TraceContext | None
    ) -> tuple:
        if not message or not message.strip():
            raise ValidationError("Message must not be empty")
        model = (model or "").strip() or self.default_model
        # Snapshot now: iteration may happen on another execution context
        trace = trace or TraceContext.current() or TraceContext.new()
        return (
            self._retriever, model, tag, message, self._system_prompt, self._temperature, trace,
        )
