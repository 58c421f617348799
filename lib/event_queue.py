"""Single-consumer command queue executed on a dedicated worker thread."""

import queue
import threading
import traceback
from concurrent.futures import Future
from typing import Callable, Any, Optional
from lib.pr_log import pr_debug, pr_err, pr_warn


class QueueShutdownError(RuntimeError):
    """Raised into futures of items that can no longer be processed."""


_SHUTDOWN = object()


class EventQueue:
    """
    Thread-safe single-consumer queue.

    Items are handed to the processor one at a time, in enqueue order, on a
    dedicated worker thread. Each enqueue returns a Future that resolves to
    the processor's return value, or to the exception it raised.
    """

    def __init__(self, processor_callback: Callable[[Any], Any], name: str = "EventQueue"):
        """
        Initialize event queue.

        Args:
            processor_callback: Function to process each queued item
            name: Descriptive name for logging and the worker thread
        """
        if not callable(processor_callback):
            raise TypeError("processor_callback must be callable")
        if not name or not isinstance(name, str):
            raise TypeError("name must be non-empty string")

        self._processor = processor_callback
        self._name = name
        self._queue: "queue.Queue" = queue.Queue()
        self._accepting = False
        self._lock = threading.Lock()
        self._worker_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the worker thread."""
        with self._lock:
            if self._worker_thread is not None and self._worker_thread.is_alive():
                pr_warn(f"{self._name}: Worker thread already running")
                return

            self._accepting = True
            self._worker_thread = threading.Thread(
                target=self._worker_loop,
                name=f"{self._name}-Worker",
                daemon=True
            )
            self._worker_thread.start()
        pr_debug(f"{self._name}: Worker thread started")

    def enqueue(self, item: Any) -> Future:
        """
        Add item to the queue.

        Args:
            item: Item to be processed by callback

        Returns:
            Future resolved once the item has been processed
        """
        future: Future = Future()
        with self._lock:
            if not self._accepting:
                future.set_exception(QueueShutdownError(f"{self._name} is not running"))
                return future
            self._queue.put((item, future))
        pr_debug(f"{self._name}: Item enqueued, queue size={self._queue.qsize()}")
        return future

    def shutdown(self, timeout: float = 2.0) -> None:
        """
        Stop accepting items, let the worker finish what is queued, then stop.

        Items still pending after the timeout are failed with
        QueueShutdownError so no caller waits on them forever.

        Args:
            timeout: Maximum seconds to wait for worker to finish
        """
        with self._lock:
            if self._worker_thread is None or not self._accepting:
                return
            self._accepting = False
            self._queue.put((_SHUTDOWN, None))

        pr_debug(f"{self._name}: Initiating shutdown")
        if threading.current_thread() is self._worker_thread:
            # the worker drains up to the shutdown marker once this item returns
            return

        self._worker_thread.join(timeout=timeout)
        if self._worker_thread.is_alive():
            pr_warn(f"{self._name}: Worker thread did not terminate within {timeout}s")
        else:
            pr_debug(f"{self._name}: Worker thread terminated")

        self._fail_pending()

    def is_running(self) -> bool:
        """Check if worker thread is active."""
        if self._worker_thread is None:
            return False
        return self._worker_thread.is_alive()

    def on_worker_thread(self) -> bool:
        """Check whether the caller is running on this queue's worker."""
        return threading.current_thread() is self._worker_thread

    def _fail_pending(self) -> None:
        saw_marker = False
        while True:
            try:
                item, future = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _SHUTDOWN:
                saw_marker = True
                continue
            if future.set_running_or_notify_cancel():
                future.set_exception(QueueShutdownError(f"{self._name} shut down"))
        if saw_marker:
            # worker is still busy; let it exit once it gets back to the queue
            self._queue.put((_SHUTDOWN, None))

    def _worker_loop(self) -> None:
        """Worker thread main loop - processes queued items sequentially."""
        pr_debug(f"{self._name}: Worker loop started")

        while True:
            item, future = self._queue.get()
            if item is _SHUTDOWN:
                break

            if not future.set_running_or_notify_cancel():
                continue

            try:
                pr_debug(f"{self._name}: Processing item")
                result = self._processor(item)
            except Exception as e:
                pr_err(f"{self._name}: Error processing item: {e}")
                traceback.print_exc()
                future.set_exception(e)
            else:
                future.set_result(result)

        pr_debug(f"{self._name}: Worker loop exited")
