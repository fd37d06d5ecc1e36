import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict

from pydantic import BaseModel

from core.errors import ForgeError

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "internal_error"

# ForgeError.code -> HTTP status
STATUS_CODES: Dict[str, int] = {
    "validation_failed": 400,
    "not_found": 404,
    "empty_conversation": 400,
    "unsupported": 400,
    "cancelled": 409,
    "model_unavailable": 424,
    "request_failed": 502,
    "connection_failure": 503,
    "stream_interrupted": 504,
    "config_error": 500,
}


def status_for(error: ForgeError) -> int:
    return STATUS_CODES.get(error.code, 500)


def to_json(event: Any) -> str:
    if isinstance(event, BaseModel):
        return event.model_dump_json(exclude_none=True)
    return json.dumps(event)


class Sentinel:
    pass


async def sink_to_async_generator(
    run: Callable[[Callable[[Any], None]], Awaitable[Any]]
) -> AsyncGenerator[str, None]:
    """
    Runs a coroutine that reports through a plain callback sink and yields
    each reported event as JSON, without blocking the event loop.

    A ForgeError raised by ``run`` becomes a final error payload unless the
    coroutine already reported an error event itself.
    """
    queue: asyncio.Queue = asyncio.Queue()
    sentinel = Sentinel()
    reported = {"error": False}

    def sink(event: Any):
        if getattr(event, "type", None) == "error":
            reported["error"] = True
        queue.put_nowait(event)

    async def runner():
        try:
            await run(sink)
        except ForgeError as e:
            logger.warning(f"⚠️ [API] Stream ended with {e.code}: {e.message}")
            if not reported["error"]:
                queue.put_nowait({"type": "error", "error": e.message, "code": e.code, "action": e.action})
        except Exception as e:
            logger.exception(f"❌ [API] Stream failed: {e}")
            queue.put_nowait({"type": "error", "error": "Internal error", "code": INTERNAL_ERROR, "action": None})
        finally:
            queue.put_nowait(sentinel)

    task = asyncio.create_task(runner())
    try:
        while True:
            event = await queue.get()
            if isinstance(event, Sentinel):
                break
            yield to_json(event)
    finally:
        if not task.done():
            task.cancel()
