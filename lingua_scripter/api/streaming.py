"""
Bridge from async provider streams to Flask's synchronous response bodies.

The provider stream runs on a worker thread with its own event loop; deltas
are handed over through a queue. When the client goes away, Flask closes the
body generator and the upstream task is cancelled, which closes the provider
connection.
"""
import asyncio
import queue
import threading
from typing import Callable, Iterator, Optional

from lingua_scripter.core.batch.markers import STREAM_ERROR_SENTINEL
from lingua_scripter.core.llm.base import StreamingProvider
from lingua_scripter.core.llm.exceptions import ProviderError
from lingua_scripter.utils.unified_logger import error, info

_DELTA = 'delta'
_ERROR = 'error'
_END = 'end'


def stream_provider_body(provider_factory: Callable[[], StreamingProvider],
                         system_prompt: str, user_prompt: str,
                         temperature: Optional[float] = None) -> Iterator[str]:
    """
    Yield raw deltas for a streamed HTTP response.

    A provider failure is reported in-band as ``[ERROR]<message>`` and ends
    the body.
    """
    messages: "queue.Queue" = queue.Queue()

    async def pump():
        provider = None
        length = 0
        try:
            provider = provider_factory()
            async for delta in provider.stream(system_prompt, user_prompt, temperature=temperature):
                length += len(delta)
                messages.put((_DELTA, delta))
            info(f"[Batch Stream] Streaming completed, total length: {length}")
        except ProviderError as e:
            error(f"Streaming batch translation failed: {e}")
            messages.put((_ERROR, str(e)))
        except Exception as e:
            error(f"Streaming batch translation crashed: {e}")
            messages.put((_ERROR, str(e)))
        finally:
            messages.put((_END, None))
            if provider is not None:
                await provider.close()

    loop = asyncio.new_event_loop()
    task = loop.create_task(pump())

    def run():
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(task)
        except asyncio.CancelledError:
            info("[Batch Stream] Client disconnected, upstream request cancelled")
        finally:
            loop.close()

    worker = threading.Thread(target=run, daemon=True)
    worker.start()

    try:
        while True:
            kind, value = messages.get()
            if kind == _DELTA:
                yield value
            elif kind == _ERROR:
                yield f"{STREAM_ERROR_SENTINEL}{value}"
            else:
                break
    finally:
        if worker.is_alive() and not task.done():
            try:
                loop.call_soon_threadsafe(task.cancel)
            except RuntimeError:
                # Loop closed between the check and the call
                pass
