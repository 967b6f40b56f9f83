"""Slack API utilities: retries, message splitting and paced posting."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import tenacity

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
SLACK_MESSAGE_LIMIT = 2500


@tenacity.retry(
    stop=tenacity.stop_after_attempt(MAX_RETRIES),
    wait=tenacity.wait_exponential(multiplier=1, min=1, max=4),
    retry=tenacity.retry_if_exception_type((TimeoutError, asyncio.TimeoutError)),
    reraise=True,
)
async def _slack_api_with_retry(coro_func: Callable, *args, **kwargs) -> Any:
    """Execute Slack API call, retrying on timeout (1s, 2s backoff)."""
    return await coro_func(*args, **kwargs)


_FENCE = "```"


def _find_break(text: str, limit: int) -> int:
    window = text[:limit]
    for separator, min_ratio in (("\n\n", 0.5), ("\n", 0.3), (" ", 0.3)):
        at = window.rfind(separator)
        if at >= limit * min_ratio:
            return at
    return limit


def split_message(text: str, limit: int = SLACK_MESSAGE_LIMIT) -> list[str]:
    """Split agent output into Slack-sized chunks without breaking code blocks.

    Prefers paragraph breaks, then newlines, then spaces. When a cut lands
    inside a ``` block, the chunk is closed with a fence and the next one
    reopens it, so each posted message renders on its own.

    Args:
        text: Message text to split.
        limit: Maximum characters per chunk, fences included.

    Returns:
        List of text chunks, each within ``limit``.
    """
    chunks = []
    remaining = text
    # Leave room for a closing fence on its own line
    budget = limit - len(_FENCE) - 1

    while len(remaining) > limit:
        cut = _find_break(remaining, budget)
        chunk = remaining[:cut].rstrip()
        remaining = remaining[cut:].lstrip()
        if chunk.count(_FENCE) % 2:
            chunk += "\n" + _FENCE
            remaining = _FENCE + "\n" + remaining
        chunks.append(chunk)

    chunks.append(remaining)
    return chunks


PostCall = Callable[[], Awaitable[Any]]


class ChannelPostQueue:
    """Serializes and paces Slack calls per channel.

    Each channel gets its own FIFO and worker task; consecutive calls to the
    same channel are at least ``interval`` seconds apart, while different
    channels drain independently. A failed call is logged and does not
    affect the calls queued behind it. A worker exits once its queue stays
    empty through the pacing interval; the next post starts a fresh one.

    Example:
        >>> queue = ChannelPostQueue(interval=1.0)
        >>> await queue.post("C123", lambda: client.chat_postMessage(channel="C123", text="hi"))
    """

    def __init__(self, interval: float = 1.0) -> None:
        self._interval = interval
        self._queues: dict[str, asyncio.Queue[tuple[PostCall, asyncio.Future]]] = {}
        self._workers: dict[str, asyncio.Task] = {}

    def _queue_for(self, channel_id: str) -> asyncio.Queue:
        queue = self._queues.get(channel_id)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[channel_id] = queue
        worker = self._workers.get(channel_id)
        if worker is None or worker.done():
            self._workers[channel_id] = asyncio.create_task(
                self._drain(channel_id, queue), name=f"slack-posts-{channel_id}"
            )
        return queue

    async def post(self, channel_id: str, call: PostCall) -> None:
        """Queue a Slack call and wait until it has been made.

        Args:
            channel_id: Channel whose queue the call joins.
            call: Zero-argument coroutine function performing the API call.
        """
        done: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue_for(channel_id).put_nowait((call, done))
        await done

    async def _drain(self, channel_id: str, queue: asyncio.Queue) -> None:
        while True:
            call, done = await queue.get()
            try:
                await call()
            except Exception:
                logger.exception("[%s] Slack post error", channel_id)
            finally:
                if not done.done():
                    done.set_result(None)
                queue.task_done()
            await asyncio.sleep(self._interval)
            if queue.empty():
                self._retire(channel_id, queue)
                return

    def _retire(self, channel_id: str, queue: asyncio.Queue) -> None:
        # No await between the empty check and this removal
        if self._queues.get(channel_id) is queue:
            del self._queues[channel_id]
            self._workers.pop(channel_id, None)
        logger.debug("[%s] Slack post worker idle, stopped", channel_id)

    def pending(self, channel_id: str) -> int:
        queue = self._queues.get(channel_id)
        return queue.qsize() if queue else 0

    def channels(self) -> list[str]:
        """Channels with a live post worker."""
        return list(self._queues)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Let queued calls drain (bounded by ``timeout``), then stop workers."""
        waits = [asyncio.create_task(q.join()) for q in self._queues.values()]
        if waits:
            _, pending = await asyncio.wait(waits, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning("Dropped undelivered Slack posts on shutdown")
        for worker in self._workers.values():
            worker.cancel()
        await asyncio.gather(*self._workers.values(), return_exceptions=True)
        self._workers.clear()
