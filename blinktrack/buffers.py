"""Fan-out of event batches between pipeline stages."""

from __future__ import annotations

import queue
import threading
from typing import Optional

from .types import EventBatch

DEFAULT_TIMEOUT = 10e-6


class BufferNotConnectedError(RuntimeError):
    """Raised when reading from a stage that has no input queue."""


class Buffers:
    """An input queue plus any number of registered output queues."""

    def __init__(self, input_buffer: Optional[queue.Queue] = None) -> None:
        self.input_buffer: Optional[queue.Queue] = input_buffer
        self.output_buffers: list[queue.Queue] = []
        self.current_batch: Optional[EventBatch] = None
        self._lock = threading.Lock()

    def output_buffer(self) -> queue.Queue:
        """Create, register and return a new output queue."""
        created: queue.Queue = queue.Queue()
        with self._lock:
            self.output_buffers.append(created)
        return created

    def deregister_buffer(self, buffer: queue.Queue) -> None:
        """Stop sending batches to ``buffer``."""
        with self._lock:
            self.output_buffers = [b for b in self.output_buffers if b is not buffer]

    def get_batch(self, timeout: float = DEFAULT_TIMEOUT) -> Optional[EventBatch]:
        """Wait up to ``timeout`` seconds for a batch; return it, or None if none came."""
        if self.input_buffer is None:
            raise BufferNotConnectedError(
                "Trying to read from buffer without initializing input buffer"
            )
        try:
            batch = self.input_buffer.get(timeout=timeout)
        except queue.Empty:
            return None
        self.current_batch = batch
        return batch

    def get_batch_and_send_further(self) -> Optional[EventBatch]:
        """Read a batch and forward it to every output queue."""
        batch = self.get_batch()
        if batch is not None:
            self.send_batch(batch)
        return batch

    def send_batch(self, batch: EventBatch) -> None:
        """Put ``batch`` on every registered output queue."""
        with self._lock:
            for buffer in self.output_buffers:
                buffer.put(batch)