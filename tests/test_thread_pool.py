import threading
import time

import pytest

from tcpnetkit.thread_pool import ThreadPool


def test_submit_returns_result():
    with ThreadPool(2) as pool:
        future = pool.submit(lambda a, b: a + b, 2, 3)
        assert future.result(timeout=5) == 5


def test_keyword_arguments_are_passed():
    with ThreadPool(1) as pool:
        future = pool.submit(lambda *, word: word.upper(), word="chat")
        assert future.result(timeout=5) == "CHAT"


def test_exception_is_delivered_through_future():
    def fail():
        raise KeyError("missing")

    with ThreadPool(1) as pool:
        future = pool.submit(fail)
        with pytest.raises(KeyError):
            future.result(timeout=5)


def test_num_threads_reports_pool_size():
    with ThreadPool(3) as pool:
        assert pool.num_threads == 3


def test_negative_thread_count_rejected():
    with pytest.raises(ValueError):
        ThreadPool(-1)


def test_submit_after_stop_raises():
    pool = ThreadPool(1)
    pool.stop()
    assert pool.stopped
    with pytest.raises(RuntimeError):
        pool.submit(lambda: None)
    pool.close()


def test_queued_tasks_drain_after_stop():
    gate = threading.Event()
    results = []
    pool = ThreadPool(1)
    pool.submit(gate.wait, 5)
    futures = [pool.submit(results.append, value) for value in range(5)]
    pool.stop()
    gate.set()
    pool.close()
    assert results == list(range(5))
    assert all(future.done() for future in futures)


def test_tasks_run_concurrently():
    barrier = threading.Barrier(2, timeout=5)
    with ThreadPool(2) as pool:
        futures = [pool.submit(barrier.wait) for _ in range(2)]
        indices = sorted(future.result(timeout=5) for future in futures)
    assert indices == [0, 1]


def test_single_worker_preserves_order():
    order = []
    with ThreadPool(1) as pool:
        for value in range(10):
            pool.submit(order.append, value)
    assert order == list(range(10))


def test_close_waits_for_running_task():
    def slow():
        time.sleep(0.1)
        return "done"

    pool = ThreadPool(1)
    future = pool.submit(slow)
    pool.close()
    assert future.done() is True
    assert future.result(timeout=0) == "done"