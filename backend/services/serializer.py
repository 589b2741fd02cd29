"""
Per-entity serializer.

File FIFO par clé (id client) : une tâche ne démarre qu'une fois la
précédente de la même clé terminée (succès ou échec). Les clés différentes
s'exécutent en parallèle sur un pool de threads.

Ordre local au processus uniquement, aucun verrou base de données n'est tenu.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)


class KeyedSerialExecutor:
    def __init__(self, max_workers: int = 4, *, name: str = "keyed-serial"):
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._queues: dict[Hashable, deque[tuple[Callable[[], Any], Future]]] = {}
        self._idle = threading.Condition(self._lock)
        self._closed = False

    def enqueue(self, key: Hashable, task: Callable[[], Any]) -> Future:
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("executor is shut down")
            queue = self._queues.get(key)
            if queue is not None:
                # Un drain est déjà actif pour cette clé
                queue.append((task, future))
                return future
            self._queues[key] = deque([(task, future)])
        self._pool.submit(self._drain, key)
        return future

    def pending(self, key: Hashable) -> int:
        with self._lock:
            queue = self._queues.get(key)
            return len(queue) if queue else 0

    def _drain(self, key: Hashable) -> None:
        while True:
            with self._lock:
                queue = self._queues[key]
                task, future = queue[0]

            if future.set_running_or_notify_cancel():
                try:
                    result = task()
                except Exception as exc:
                    logger.exception("Serialized task for key %r failed", key)
                    future.set_exception(exc)
                else:
                    future.set_result(result)

            with self._lock:
                queue.popleft()
                if not queue:
                    del self._queues[key]
                    self._idle.notify_all()
                    return

    def drain(self, timeout: float | None = None) -> bool:
        """Attend que toutes les files soient vides. Retourne False sur timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._queues, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
        self._pool.shutdown(wait=wait)
