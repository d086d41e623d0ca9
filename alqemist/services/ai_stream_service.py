"""
Streaming chat response with model fallback, word-grouping and delay for a natural-feeling stream.
The blocking provider stream runs in a worker thread and feeds an asyncio.Queue.
If the provider fails before the first delta, the optimizer picks a replacement model and the
request is retried on it; a failure after the first delta (or with no replacement) ends the
stream with an error event.

SSE payloads (data: {json}):
  {"model": {...}}      model that is answering (sent with its first delta)
  {"delta": "..."}      text chunk
  {"error": "..."}      terminal failure
  {"done": true, ...}   end of stream, after on_stream_done
"""
import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import replace

from fastapi.responses import StreamingResponse

from alqemist.config import get_settings
from alqemist.services.llm_providers import ProviderRegistry, classify_provider_error
from alqemist.services.model_catalog import ModelInfo
from alqemist.services.model_optimizer import ModelOptimizer, ModelRecommendation

logger = logging.getLogger(__name__)

StreamDone = Callable[[str, ModelInfo], Awaitable[dict | None]]


class ProviderUnavailable(Exception):
    """Provider for a model has no credentials configured."""


def _sse_message(payload: dict) -> str:
    """Proper SSE format: data: {json}\\n\\n"""
    return f"data: {json.dumps(payload)}\n\n"


def _sync_producer(
    registry: ProviderRegistry,
    model: ModelInfo,
    messages: list[dict],
    system: str | None,
    queue: asyncio.Queue,
    loop: asyncio.AbstractEventLoop,
) -> None:
    """
    Run in thread: provider stream; put each delta into queue via loop.
    Puts None when the stream ends, or the Exception on error.
    """
    try:
        provider = registry.get(model.provider)
        if provider is None:
            raise ProviderUnavailable(f"Provider {model.provider} is not configured (unavailable)")
        for delta in provider.stream_chat(model.id, messages, system):
            loop.call_soon_threadsafe(queue.put_nowait, delta)
        loop.call_soon_threadsafe(queue.put_nowait, None)
    except Exception as e:
        loop.call_soon_threadsafe(queue.put_nowait, e)


def _take_words(buffer: str, n: int) -> tuple[str, str]:
    """
    Take up to n full words from buffer. Returns (chunk_to_send, remainder).
    Words are split by spaces; we never break mid-word.
    """
    parts = buffer.split()
    if len(parts) <= n:
        return ("", buffer)
    send = " ".join(parts[:n]) + " "
    remainder = " ".join(parts[n:])
    return (send, remainder)


def _model_payload(model: ModelInfo, fallback_from: str | None) -> dict:
    payload = {"id": model.id, "name": model.name, "provider": model.provider}
    if fallback_from:
        payload["fallback_from"] = fallback_from
    return payload


async def _stream_with_fallback(
    recommendation: ModelRecommendation,
    optimizer: ModelOptimizer,
    registry: ProviderRegistry,
    messages: list[dict],
    system: str | None,
    on_stream_done: StreamDone,
) -> AsyncGenerator[str, None]:
    settings = get_settings()
    group_size = max(1, settings.stream_word_group_size)
    delay_s = max(0.0, settings.stream_delay_ms / 1000.0)
    loop = asyncio.get_event_loop()

    model = recommendation.primary
    tried = {model.id}
    fallback_from = None
    buffer = ""
    full_reply: list[str] = []

    while True:
        queue: asyncio.Queue = asyncio.Queue()
        producer_future = loop.run_in_executor(None, _sync_producer, registry, model, messages, system, queue, loop)
        failure = None
        try:
            while True:
                item = await queue.get()
                if item is None:
                    break
                if isinstance(item, Exception):
                    failure = item
                    break
                if not full_reply:
                    yield _sse_message({"model": _model_payload(model, fallback_from)})
                buffer += item
                full_reply.append(item)
                while True:
                    chunk, remainder = _take_words(buffer, group_size)
                    buffer = remainder
                    if not chunk:
                        break
                    yield _sse_message({"delta": chunk})
                    await asyncio.sleep(delay_s)
        finally:
            await producer_future

        if failure is None:
            break

        kind = classify_provider_error(failure)
        if full_reply:
            logger.warning("Model %s failed mid-stream (%s): %s", model.id, kind, failure)
            yield _sse_message({"error": "AI service interrupted. Please try again.", "kind": kind})
            return
        remaining = replace(recommendation, fallbacks=[m for m in recommendation.fallbacks if m.id not in tried])
        replacement = optimizer.handle_model_failure(model.id, kind, remaining)
        if replacement is None:
            logger.warning("Model %s failed (%s), no fallback left: %s", model.id, kind, failure)
            yield _sse_message({"error": "AI service temporarily unavailable.", "kind": kind})
            return
        logger.warning("Model %s failed (%s), falling back to %s: %s", model.id, kind, replacement.id, failure)
        fallback_from = fallback_from or model.id
        tried.add(replacement.id)
        model = replacement

    # Flush remaining buffer (whole words only)
    if buffer.strip():
        yield _sse_message({"delta": buffer})

    full_text = "".join(full_reply)
    try:
        extra = await on_stream_done(full_text, model) or {}
    except Exception as e:
        logger.warning("on_stream_done failed (stream continues): %s", e)
        extra = {}
    yield _sse_message({"done": True, "model": model.id, **extra})


async def stream_chat_response(
    recommendation: ModelRecommendation,
    optimizer: ModelOptimizer,
    registry: ProviderRegistry,
    messages: list[dict],
    system: str | None,
    on_stream_done: StreamDone,
) -> StreamingResponse:
    """
    StreamingResponse over the recommended model and its fallbacks.
    on_stream_done(full_reply_text, model) runs after a successful stream; its dict is merged
    into the done event. If it raises, we log and send a bare done event.
    """
    return StreamingResponse(
        _stream_with_fallback(recommendation, optimizer, registry, messages, system, on_stream_done),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
