"""
Line oriented transport between neighbour nodes.
"""

import asyncio
import logging
import os
import stat
from abc import ABC, abstractmethod
from typing import IO, Optional

from src.core.errors import StartupFailure, TransportWriteError

logger = logging.getLogger(__name__)


class ITransport(ABC):
    """
    Abstract interface of the channel carrying envelopes, one per line.
    """

    @abstractmethod
    async def open(self) -> None:
        """
        Opens the channel.
        Raises StartupFailure if it cannot be opened.
        """
        pass

    @abstractmethod
    async def read_line(self) -> Optional[str]:
        """Returns the next line without its terminator, or None at end of stream."""
        pass

    @abstractmethod
    async def write_line(self, line: str) -> None:
        """
        Writes one line.
        Raises TransportWriteError on failure.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Releases the channel."""
        pass


# Longest accepted line on a pipe
LINE_LIMIT = 2**20


class FileTransport(ITransport):
    """
    Transport over two files, usually named pipes (see scripts/launch-network.sh).

    A FIFO input is read through an asyncio pipe transport, so a pending read
    can be cancelled and closing never waits for the peer. A regular input
    file is read in a worker thread. Writes always run in a worker thread.
    """

    def __init__(self, input_path: str, output_path: str):
        self.input_path = input_path
        self.output_path = output_path
        self._input: Optional[IO[bytes]] = None
        self._output: Optional[IO[str]] = None
        self._pipe: Optional[asyncio.StreamReader] = None
        self._pipe_transport: Optional[asyncio.ReadTransport] = None

    async def open(self) -> None:
        # Opening a FIFO blocks until there is someone at the other end,
        # both sides must be opened concurrently or two nodes in a ring deadlock.
        opening_input = asyncio.create_task(asyncio.to_thread(open, self.input_path, "rb"))
        opening_output = asyncio.create_task(
            asyncio.to_thread(open, self.output_path, "a", encoding="utf-8")
        )
        done, pending = await asyncio.wait(
            {opening_input, opening_output}, return_when=asyncio.FIRST_EXCEPTION
        )

        error = next((t.exception() for t in done if t.exception() is not None), None)
        if error is not None:
            await self._abort_open(opening_input, opening_output, pending)
            raise StartupFailure(f"Cannot open transport: {error}") from error

        self._input = opening_input.result()
        self._output = opening_output.result()

        if stat.S_ISFIFO(os.fstat(self._input.fileno()).st_mode):
            loop = asyncio.get_running_loop()
            self._pipe = asyncio.StreamReader(limit=LINE_LIMIT)
            self._pipe_transport, _ = await loop.connect_read_pipe(
                lambda: asyncio.StreamReaderProtocol(self._pipe), self._input
            )

        logger.info("Transport opened (in: %s, out: %s)", self.input_path, self.output_path)

    async def _abort_open(
        self,
        opening_input: "asyncio.Task[IO[bytes]]",
        opening_output: "asyncio.Task[IO[str]]",
        pending: "set[asyncio.Task]",
    ) -> None:
        """Releases both sides after one of them failed to open."""
        # A side still waiting for its peer is woken up by briefly playing that peer
        if opening_input in pending:
            await self._release(opening_input, self.input_path, os.O_WRONLY | os.O_NONBLOCK)
        if opening_output in pending:
            await self._release(opening_output, self.output_path, os.O_RDONLY | os.O_NONBLOCK)

        for task in (opening_input, opening_output):
            try:
                stream = await task
            except OSError:
                continue
            stream.close()

    async def _release(self, opening: "asyncio.Task", path: str, flags: int) -> None:
        # The worker may not have reached open() yet, so knock until it returns
        while not opening.done():
            self._knock(path, flags)
            await asyncio.wait({opening}, timeout=0.05)

    @staticmethod
    def _knock(path: str, flags: int) -> None:
        try:
            os.close(os.open(path, flags))
        except OSError as e:
            logger.debug("Could not release %s: %s", path, e)

    async def read_line(self) -> Optional[str]:
        if self._pipe is not None:
            raw = await self._pipe.readline()
        elif self._input is not None:
            raw = await asyncio.to_thread(self._input.readline)
        else:
            raise RuntimeError("Transport is not open")

        if not raw:
            return None
        return raw.rstrip(b"\r\n").decode("utf-8", errors="replace")

    async def write_line(self, line: str) -> None:
        if self._output is None:
            raise TransportWriteError("Transport is not open")

        try:
            await asyncio.to_thread(self._write, self._output, line)
        except (OSError, ValueError) as e:
            raise TransportWriteError(str(e)) from e

    @staticmethod
    def _write(stream: IO[str], line: str) -> None:
        stream.write(line + "\n")
        stream.flush()

    async def close(self) -> None:
        if self._output is not None:
            try:
                self._output.close()
            except OSError as e:
                logger.warning("Error closing transport output: %s", e)

        if self._pipe_transport is not None:
            # Closes the underlying file once the loop detaches it
            self._pipe_transport.close()
        elif self._input is not None:
            self._input.close()

        self._input = None
        self._output = None
        self._pipe = None
        self._pipe_transport = None
