"""Fan subprocess output out to the HTTP response and the job log."""
import asyncio
from typing import AsyncIterator, Optional

CHUNK_SIZE = 4096


class ResponseChannel:
    """Byte stream between a running job and its HTTP response.

    The job writes without waiting on the client; the response drains the
    channel until it is closed. Writes after ``close()`` are dropped, so a
    client that hangs up never stops the job.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> None:
        if self._closed or not data:
            return
        self._queue.put_nowait(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._queue.get()
                if chunk is None:
                    return
                yield chunk
        finally:
            # Reader is gone (finished or client hung up); stop buffering
            self._closed = True
            while not self._queue.empty():
                self._queue.get_nowait()


async def _pump(stream: Optional[asyncio.StreamReader], channel: ResponseChannel, log) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(CHUNK_SIZE)
        if not chunk:
            break
        channel.write(chunk)
        await log.write(chunk)


async def stream_process_output(process: asyncio.subprocess.Process, channel: ResponseChannel, log) -> None:
    """Forward stdout and stderr of ``process`` to both sinks as bytes arrive.

    Neither sink is closed here. Ordering is kept per stream only.
    """
    await asyncio.gather(
        _pump(process.stdout, channel, log),
        _pump(process.stderr, channel, log),
    )
