"""
Runtime that feeds reconciliation keys to the DiscoveryReconciler.

Watch threads turn change events into (namespace, name) keys. A WorkQueue
hands each key to at most one worker at a time, coalesces duplicates, and
holds delayed and backed-off re-triggers until they are due.
"""

import heapq
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional, Set, Tuple

from kubernetes import watch
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

Key = Tuple[str, str]

# Same defaults as client-go's per-item exponential failure rate limiter
BACKOFF_BASE_SECONDS = 0.005
BACKOFF_MAX_SECONDS = 1000.0

# Pause before re-establishing a failed watch stream
WATCH_RETRY_SECONDS = 5


class WorkQueue:
    """Key-serialized work queue with delayed and rate-limited adds.

    A key is never handed out twice concurrently: re-adding a key that is being
    processed marks it dirty, and it is queued again when done() is called.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        backoff_max: float = BACKOFF_MAX_SECONDS,
    ):
        self._clock = clock
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._cond = threading.Condition()
        self._queue: List[Hashable] = []
        self._dirty: Set[Hashable] = set()
        self._processing: Set[Hashable] = set()
        # (due, seq, key); a key's latest schedule wins
        self._waiting: List[Tuple[float, int, Hashable]] = []
        self._scheduled: Dict[Hashable, int] = {}
        self._seq = 0
        self._failures: Dict[Hashable, int] = {}
        self._shutting_down = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def add(self, key: Hashable) -> None:
        with self._cond:
            self._add_locked(key)

    def _add_locked(self, key: Hashable) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            return
        self._queue.append(key)
        self._cond.notify()

    def add_after(self, key: Hashable, delay: float) -> None:
        if delay <= 0:
            self.add(key)
            return
        with self._cond:
            if self._shutting_down:
                return
            self._seq += 1
            self._scheduled[key] = self._seq
            heapq.heappush(self._waiting, (self._clock() + delay, self._seq, key))
            self._cond.notify()

    def add_rate_limited(self, key: Hashable) -> None:
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        self.add_after(key, self.backoff_for(failures))

    def backoff_for(self, failures: int) -> float:
        return min(self._backoff_base * (2 ** failures), self._backoff_max)

    def num_requeues(self, key: Hashable) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def forget(self, key: Hashable) -> None:
        with self._cond:
            self._failures.pop(key, None)

    def _promote_due_locked(self) -> Optional[float]:
        """Move due delayed keys into the queue; return seconds until the next one."""
        now = self._clock()
        while self._waiting:
            due, seq, key = self._waiting[0]
            if self._scheduled.get(key) != seq:
                # Superseded by a later add_after
                heapq.heappop(self._waiting)
                continue
            if due > now:
                return due - now
            heapq.heappop(self._waiting)
            del self._scheduled[key]
            self._add_locked(key)
        return None

    def get(self, timeout: Optional[float] = None) -> Optional[Hashable]:
        """Block until a key is available, the timeout passes, or shutdown."""
        deadline = None if timeout is None else self._clock() + timeout
        with self._cond:
            while True:
                next_due = self._promote_due_locked()
                if self._queue:
                    key = self._queue.pop(0)
                    self._processing.add(key)
                    self._dirty.discard(key)
                    return key
                if self._shutting_down:
                    return None
                wait = next_due
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    wait = remaining if wait is None else min(wait, remaining)
                self._cond.wait(wait)

    def done(self, key: Hashable) -> None:
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty:
                self._queue.append(key)
                self._cond.notify()

    def shutdown(self) -> None:
        with self._cond:
            self._shutting_down = True
            self._cond.notify_all()

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down


def object_key(obj: Any) -> Optional[Key]:
    """(namespace, name) of a watch event object, typed model or dict."""
    if isinstance(obj, dict):
        metadata = obj.get('metadata') or {}
        namespace, name = metadata.get('namespace'), metadata.get('name')
    else:
        metadata = getattr(obj, 'metadata', None)
        namespace = getattr(metadata, 'namespace', None)
        name = getattr(metadata, 'name', None)
    if not name:
        return None
    return namespace or '', name


class Controller:
    """Runs watch threads and reconcile workers around a reconciler."""

    def __init__(self, reconciler, store, settings, queue: Optional[WorkQueue] = None):
        self._reconciler = reconciler
        self._store = store
        self._settings = settings
        self.queue = queue if queue is not None else WorkQueue()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

    def process_next(self, timeout: Optional[float] = None) -> bool:
        """Reconcile one key. Returns False when the queue is shut down or empty."""
        key = self.queue.get(timeout=timeout)
        if key is None:
            return False
        namespace, name = key
        try:
            result = self._reconciler.reconcile(namespace, name)
        except Exception:
            logger.exception('Reconcile of %s/%s failed, retrying with backoff', namespace, name)
            self.queue.add_rate_limited(key)
        else:
            self.queue.forget(key)
            if result.requeue_after is not None:
                self.queue.add_after(key, result.requeue_after)
        finally:
            self.queue.done(key)
        return True

    def _worker(self) -> None:
        while not self._stop.is_set():
            if not self.process_next(timeout=1.0) and self.queue.shutting_down:
                return

    def _watch(self, gvk) -> None:
        list_fn, kwargs = self._store.list_source(gvk)
        while not self._stop.is_set():
            w = watch.Watch()
            try:
                for event in w.stream(list_fn, timeout_seconds=self._settings.watch_timeout_seconds, **kwargs):
                    if self._stop.is_set():
                        w.stop()
                        break
                    key = object_key(event.get('object'))
                    if key is not None:
                        self.queue.add(key)
            except ApiException as e:
                logger.warning('Watch on %s failed (%s %s), restarting', gvk.kind, e.status, e.reason)
                self._stop.wait(WATCH_RETRY_SECONDS)
            except Exception:
                logger.exception('Watch on %s failed, restarting', gvk.kind)
                self._stop.wait(WATCH_RETRY_SECONDS)

    def start(self) -> None:
        gvks = (self._store.tracking_gvk,) + tuple(self._store.target_gvks)
        for gvk in gvks:
            self._spawn(self._watch, f'watch-{gvk.kind.lower()}', gvk)
        for i in range(self._settings.workers):
            self._spawn(self._worker, f'worker-{i}')
        logger.info('Started %d watches and %d workers', len(gvks), self._settings.workers)

    def _spawn(self, target, name, *args) -> None:
        thread = threading.Thread(target=target, name=name, args=args, daemon=True)
        thread.start()
        self._threads.append(thread)

    def stop(self) -> None:
        self._stop.set()
        self.queue.shutdown()
        for thread in self._threads:
            thread.join(timeout=5)

    def run(self) -> None:
        self.start()
        try:
            while not self._stop.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info('Interrupted, shutting down')
        finally:
            self.stop()
