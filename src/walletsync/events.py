"""
Observer registry with ordered dispatch and a shared mutation queue.

Handlers run synchronously in subscription order. A handler that raises is
logged and skipped so the rest of the dispatch still runs. Mutations
requested from inside a dispatch are queued on the MutationQueue and run
once the outermost mutation has finished.
"""
import logging
from collections import deque
from contextlib import contextmanager, nullcontext
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

Handler = Callable[..., Any]


class MutationQueue:
    """
    Serializes state mutations for one group of stores.

    A mutation submitted while no handler is dispatching runs inline and
    returns its result. A mutation submitted from inside a dispatch is
    deferred: it returns None immediately and runs, in FIFO order, right
    after the outermost mutation completes. A dispatch that was not started
    by a queued mutation drains the queue itself when it ends.
    """

    def __init__(self):
        self._depth = 0
        self._dispatching = 0
        self._deferred: Deque[Tuple[Handler, tuple, dict]] = deque()

    @property
    def dispatching(self) -> bool:
        return self._dispatching > 0

    @contextmanager
    def dispatch(self):
        self._dispatching += 1
        try:
            yield
        finally:
            self._dispatching -= 1
            if self._dispatching == 0 and self._depth == 0:
                self._drain()

    def run(self, fn: Handler, *args, **kwargs) -> Any:
        if self._dispatching:
            name = getattr(fn, "__qualname__", repr(fn))
            logging.debug(f"Deferring re-entrant mutation {name}")
            self._deferred.append((fn, args, kwargs))
            return None

        self._depth += 1
        try:
            return fn(*args, **kwargs)
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._drain()

    def _drain(self) -> None:
        while self._deferred and not self._dispatching:
            fn, args, kwargs = self._deferred.popleft()
            self._depth += 1
            try:
                fn(*args, **kwargs)
            except Exception:
                name = getattr(fn, "__qualname__", repr(fn))
                logging.exception(f"Deferred mutation {name} failed")
            finally:
                self._depth -= 1

    def pending(self) -> int:
        return len(self._deferred)


class EventEmitter:
    """
    Ordered, fault-isolated event dispatch.

    Parameters
    ----------
    events : Optional[Iterable[str]]
        Allowed event names. None accepts any name.
    queue : Optional[MutationQueue]
        Queue whose re-entrancy guard covers this emitter's dispatches.
    """

    def __init__(
        self,
        events: Optional[Iterable[str]] = None,
        queue: Optional[MutationQueue] = None,
    ):
        self._events = frozenset(events) if events is not None else None
        self._queue = queue
        self._handlers: Dict[str, List[Handler]] = {}

    def _check(self, event: str) -> None:
        if self._events is not None and event not in self._events:
            raise ValueError(
                f"Unknown event '{event}', expected one of {sorted(self._events)}"
            )

    def on(self, event: str, handler: Handler) -> None:
        self._check(event)
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event: str, handler: Handler) -> None:
        self._check(event)
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def emit(self, event: str, *args) -> None:
        self._check(event)
        handlers = list(self._handlers.get(event, []))
        if not handlers:
            return
        guard = self._queue.dispatch() if self._queue is not None else nullcontext()
        with guard:
            for handler in handlers:
                try:
                    handler(*args)
                except Exception:
                    logging.exception(f"Handler for '{event}' raised")

    def clear(self) -> None:
        self._handlers.clear()
