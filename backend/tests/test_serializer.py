import threading
import time

import pytest

from backend.services.serializer import KeyedSerialExecutor


def test_same_key_runs_in_enqueue_order_without_overlap(executor):
    """
    GIVEN A puis B pour le même client
    WHEN A est bloqué sur son I/O
    THEN B ne démarre qu'après la fin complète de A
    """
    events = []
    release_a = threading.Event()

    def task_a():
        events.append("A:start")
        release_a.wait(timeout=5)
        events.append("A:end")
        return "a"

    def task_b():
        events.append("B:start")
        events.append("B:end")
        return "b"

    fut_a = executor.enqueue("C-1", task_a)
    fut_b = executor.enqueue("C-1", task_b)

    time.sleep(0.1)
    assert events == ["A:start"]
    assert executor.pending("C-1") == 2

    release_a.set()
    assert fut_b.result(timeout=5) == "b"
    assert fut_a.result(timeout=5) == "a"
    assert events == ["A:start", "A:end", "B:start", "B:end"]
    assert executor.drain(timeout=5) is True
    assert executor.pending("C-1") == 0


def test_different_keys_run_concurrently(executor):
    first_running = threading.Event()
    second_ran = threading.Event()

    def blocked_until_other_key():
        first_running.set()
        # ne se débloque que si l'autre client tourne en parallèle
        return second_ran.wait(timeout=5)

    def other_key():
        first_running.wait(timeout=5)
        second_ran.set()
        return True

    fut_1 = executor.enqueue("C-1", blocked_until_other_key)
    fut_2 = executor.enqueue("C-2", other_key)

    assert fut_2.result(timeout=5) is True
    assert fut_1.result(timeout=5) is True


def test_failure_does_not_block_the_chain(executor):
    ran = []

    def boom():
        raise RuntimeError("ledger write failed")

    fut_fail = executor.enqueue("C-1", boom)
    fut_next = executor.enqueue("C-1", lambda: ran.append("next") or "ok")

    assert fut_next.result(timeout=5) == "ok"
    assert isinstance(fut_fail.exception(timeout=5), RuntimeError)
    assert ran == ["next"]


def test_many_tasks_same_key_keep_fifo(executor):
    seen = []
    lock = threading.Lock()

    def make(i):
        def task():
            time.sleep(0.001 * (i % 3))
            with lock:
                seen.append(i)

        return task

    futures = [executor.enqueue("C-1", make(i)) for i in range(30)]
    for fut in futures:
        fut.result(timeout=10)

    assert seen == list(range(30))


def test_drain_waits_for_all_keys(executor):
    done = []
    for key in ("A", "B", "C"):
        executor.enqueue(key, lambda k=key: (time.sleep(0.05), done.append(k)))

    assert executor.drain(timeout=5) is True
    assert sorted(done) == ["A", "B", "C"]


def test_enqueue_after_shutdown_is_refused():
    ex = KeyedSerialExecutor(max_workers=1)
    ex.shutdown()

    with pytest.raises(RuntimeError):
        ex.enqueue("C-1", lambda: None)
