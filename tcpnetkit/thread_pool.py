"""A fixed-size pool of worker threads fed from a shared task queue."""

from __future__ import annotations

import threading
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable


class ThreadPool:
    """Runs submitted callables on a fixed set of worker threads.

    Tasks are taken from the queue in submission order. After :meth:`stop`
    no new tasks are accepted, but tasks already queued are still run
    before the workers exit.
    """

    def __init__(self, num_threads: int) -> None:
        if num_threads < 0:
            raise ValueError("num_threads must not be negative")
        self._tasks: deque[tuple[Future, Callable[..., Any], tuple, dict]] = deque()
        self._condition = threading.Condition()
        self._stopped = False
        self._workers = [
            threading.Thread(target=self._work, name=f"pool-worker-{index}", daemon=True)
            for index in range(num_threads)
        ]
        for worker in self._workers:
            worker.start()

    @property
    def num_threads(self) -> int:
        """Number of worker threads in the pool."""
        return len(self._workers)

    @property
    def stopped(self) -> bool:
        """Whether the pool has stopped accepting tasks."""
        return self._stopped

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Queue ``fn(*args, **kwargs)`` and return a future for its result."""
        future: Future = Future()
        with self._condition:
            if self._stopped:
                raise RuntimeError("submit on stopped ThreadPool")
            self._tasks.append((future, fn, args, kwargs))
            self._condition.notify()
        return future

    def stop(self) -> None:
        """Stop accepting tasks; workers exit once the queue is drained."""
        with self._condition:
            self._stopped = True
            self._condition.notify_all()

    def close(self) -> None:
        """Stop the pool and wait for every worker to finish."""
        self.stop()
        current = threading.current_thread()
        for worker in self._workers:
            if worker is not current:
                worker.join()

    def __enter__(self) -> ThreadPool:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _work(self) -> None:
        while True:
            with self._condition:
                self._condition.wait_for(lambda: self._stopped or bool(self._tasks))
                if not self._tasks:
                    return
                future, fn, args, kwargs = self._tasks.popleft()
            if not future.set_running_or_notify_cancel():
                continue
            try:
                result = fn(*args, **kwargs)
            except BaseException as error:  # delivered through the future
                future.set_exception(error)
            else:
                future.set_result(result)