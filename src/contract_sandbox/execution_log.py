# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.

import asyncio
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from loguru import logger

from contract_sandbox.errors import LoggingError
from contract_sandbox.models import LogRecord


class ExecutionLogger:
    """Append-only execution log with a single writer task.

    Requests submit records through ``record``; one background task appends
    them, one JSON line each, to the shared log file. Since nothing else
    writes the file, lines from concurrent requests never interleave.

    Write failures are reported through the application logger and counted
    in ``failures``. They never reach the caller.
    """

    def __init__(self, path: Path):
        """Initializes the ExecutionLogger.

        Args:
            path: The JSON-lines file to append to. Parent directories are
                created on first write.
        """
        self.path = Path(path)
        self.failures = 0
        self._queue: asyncio.Queue[LogRecord | None] = asyncio.Queue()
        self._writer_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._writer_task is not None and not self._writer_task.done()

    async def start(self) -> None:
        """Start the writer task if it is not already running."""
        if not self.running:
            self._writer_task = asyncio.create_task(self._writer_loop())

    async def record(self, log_record: LogRecord) -> None:
        """Submit a record for appending. Returns without waiting for the write."""
        await self.start()
        self._queue.put_nowait(log_record)

    async def flush(self) -> None:
        """Wait until every submitted record has been written or reported."""
        if self.running:
            await self._queue.join()

    async def stop(self) -> None:
        """Drain pending records, then stop the writer task."""
        writer_task = self._writer_task
        if writer_task is None or writer_task.done():
            return
        self._queue.put_nowait(None)
        await writer_task
        self._writer_task = None

    async def _append(self, log_record: LogRecord) -> None:
        line = log_record.model_dump_json() + "\n"
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
                await f.write(line)
        except OSError as e:
            raise LoggingError(f"Failed to append execution log record to {self.path}: {e}") from e

    async def _writer_loop(self) -> None:
        while True:
            log_record = await self._queue.get()
            try:
                if log_record is None:
                    return
                await self._append(log_record)
            except LoggingError as e:
                self.failures += 1
                logger.warning(str(e))
            finally:
                self._queue.task_done()
