"""Background reconciliation of bridge transfers against chain state."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass(frozen=True)
class PollPolicy:
    """
    Back-off and give-up bounds for reconciliation.

    Parameters
    ----------
    initial_interval : float
        Delay before the second poll of a transfer, and after any progress.
    max_interval : float
        Cap on the back-off delay.
    backoff : float
        Multiplier applied to the delay after a poll without progress.
    timeout : float
        Wall-clock seconds after creation at which a transfer is failed.
    max_polls : Optional[int]
        Optional bound on polls without progress.
    tick_interval : float
        How often the background loop wakes up to look for due transfers.
    """

    initial_interval: float = 5.0
    max_interval: float = 60.0
    backoff: float = 2.0
    timeout: float = 1800.0
    max_polls: Optional[int] = None
    tick_interval: float = 1.0

    def __post_init__(self):
        if self.initial_interval <= 0 or self.max_interval < self.initial_interval:
            raise ValueError("Poll intervals must be positive and max_interval >= initial_interval")
        if self.backoff < 1.0:
            raise ValueError(f"Back-off multiplier must be >= 1, got {self.backoff}")
        if self.timeout <= 0:
            raise ValueError(f"Reconciliation timeout must be positive, got {self.timeout}")

    def next_interval(self, interval: float) -> float:
        return min(interval * self.backoff, self.max_interval)


@dataclass
class _Schedule:
    due_at: float
    interval: float
    polls: int = 0


class TransferReconciler:
    """
    Polls due transfers of a TransferStore with exponential back-off.

    The schedule lives in memory only, so a pass that learns nothing changes
    nothing in the store except ``last_checked_at``.

    Parameters
    ----------
    store : TransferStore
        Store whose transfers are reconciled.
    policy : Optional[PollPolicy]
        Back-off settings; the store's policy when None.
    clock : Callable[[], float]
        Time source.
    """

    def __init__(self, store, policy: Optional[PollPolicy] = None, clock: Callable[[], float] = time.time):
        self.store = store
        self.policy = policy or store.policy
        self._clock = clock
        self._schedule: Dict[int, _Schedule] = {}
        self._task: Optional[asyncio.Task] = None
        self._pass_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule_for(self, transfer_id: int) -> Optional[_Schedule]:
        return self._schedule.get(transfer_id)

    async def run_pass(self, now: Optional[float] = None) -> int:
        """
        Reconcile every transfer that is due.

        Returns
        -------
        int
            Number of transfers polled.
        """
        async with self._pass_lock:
            now = self._clock() if now is None else now
            candidates = self.store.reconcilable(now)
            live = {t.id for t in candidates}
            for transfer_id in list(self._schedule):
                if transfer_id not in live:
                    del self._schedule[transfer_id]

            polled = 0
            for transfer in candidates:
                entry = self._schedule.setdefault(
                    transfer.id, _Schedule(due_at=now, interval=self.policy.initial_interval)
                )
                if entry.due_at > now:
                    continue
                polled += 1
                try:
                    progressed = await self.store.reconcile(transfer.id, now=now, polls=entry.polls)
                except Exception:
                    logging.exception(f"Reconciliation pass failed for transfer {transfer.id}")
                    progressed = False

                if progressed:
                    entry.interval = self.policy.initial_interval
                    entry.polls = 0
                else:
                    entry.polls += 1
                    entry.interval = self.policy.next_interval(entry.interval)
                entry.due_at = now + entry.interval
            return polled

    async def _loop(self) -> None:
        logging.info("Transfer reconciler started")
        while True:
            try:
                await self.run_pass()
            except Exception:
                logging.exception("Transfer reconciler pass failed")
            await asyncio.sleep(self.policy.tick_interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logging.info("Transfer reconciler stopped")
