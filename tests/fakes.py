"""Fake transports for DeviceLink tests."""
import asyncio

HANG = object()


class FakeReader:
    """Delivers queued chunks one per read(), preserving boundaries."""

    def __init__(self, *chunks, eof=True):
        self._queue = asyncio.Queue()
        for chunk in chunks:
            self.feed(chunk)
        if eof:
            self.feed_eof()

    def feed(self, chunk: bytes) -> None:
        self._queue.put_nowait(chunk)

    def feed_eof(self) -> None:
        self._queue.put_nowait(b"")

    async def read(self, n=-1) -> bytes:
        return await self._queue.get()


class FakeWriter:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True

    async def wait_closed(self):
        return None

    def get_extra_info(self, name, default=None):
        return default


class FakeConnector:
    """Stands in for asyncio.open_connection.

    Each call consumes one outcome: a FakeReader (connect succeeds), an
    exception instance (connect fails) or HANG (connect never completes).
    Once outcomes run out every call hangs.
    """

    def __init__(self, *outcomes, writer_factory=None):
        self.outcomes = list(outcomes)
        self.writer_factory = writer_factory or FakeWriter
        self.calls = []
        self.writers = []

    async def __call__(self, host, port):
        self.calls.append((host, port, asyncio.get_running_loop().time()))
        outcome = self.outcomes.pop(0) if self.outcomes else HANG
        if outcome is HANG:
            await asyncio.Event().wait()
        if isinstance(outcome, BaseException):
            raise outcome
        writer = self.writer_factory()
        self.writers.append(writer)
        return outcome, writer


class SlowCloseWriter(FakeWriter):
    """Writer whose teardown takes a while, like a peer slow to ack FIN."""

    def __init__(self, delay: float = 0.2):
        super().__init__()
        self.delay = delay

    async def wait_closed(self):
        await asyncio.sleep(self.delay)
