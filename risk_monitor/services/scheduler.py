"""Cancellable periodic tasks, one per consumer."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


@dataclass
class Subscription:
    """Bookkeeping for one consumer's periodic job."""

    consumer_id: str
    interval: float
    task: asyncio.Task | None = field(default=None, repr=False)
    ticks: int = 0
    failures: int = 0
    skipped: int = 0
    last_error: str | None = None

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()


class Scheduler:
    """Runs each consumer's job at a fixed rate until it is unsubscribed.

    A job that overruns its interval makes the scheduler skip the ticks it
    missed, so one consumer never has two runs in flight. A failing job is
    logged and retried on the next tick. Unsubscribing cancels the timer and
    any in-flight job.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def subscribe(self, consumer_id: str, interval: float, job: Job) -> Subscription:
        """Start running ``job`` every ``interval`` seconds, first tick now.

        Must be called from within a running event loop.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if consumer_id in self._subscriptions:
            raise ValueError(f"Consumer '{consumer_id}' is already subscribed")

        subscription = Subscription(consumer_id=consumer_id, interval=interval)
        subscription.task = asyncio.get_running_loop().create_task(
            self._run(subscription, job), name=f"poll:{consumer_id}"
        )
        self._subscriptions[consumer_id] = subscription
        logger.info("Subscribed %s every %.1fs", consumer_id, interval)
        return subscription

    async def unsubscribe(self, consumer_id: str) -> bool:
        """Cancel a consumer's timer and in-flight job. False if unknown."""
        subscription = self._subscriptions.pop(consumer_id, None)
        if subscription is None:
            return False
        await self._cancel(subscription)
        logger.info("Unsubscribed %s after %d ticks", consumer_id, subscription.ticks)
        return True

    async def shutdown(self) -> None:
        """Cancel every subscription."""
        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            await self._cancel(subscription)
        if subscriptions:
            logger.info("Scheduler stopped %d subscriptions", len(subscriptions))

    def get(self, consumer_id: str) -> Subscription | None:
        return self._subscriptions.get(consumer_id)

    def is_active(self, consumer_id: str) -> bool:
        subscription = self._subscriptions.get(consumer_id)
        return subscription is not None and subscription.active

    @property
    def consumers(self) -> list[str]:
        return list(self._subscriptions)

    @staticmethod
    async def _cancel(subscription: Subscription) -> None:
        task = subscription.task
        if task is None or task.done():
            return
        task.cancel()
        # gather() absorbs the task's CancelledError but still propagates a
        # cancellation of the caller.
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self, subscription: Subscription, job: Job) -> None:
        loop = asyncio.get_running_loop()
        interval = subscription.interval
        next_tick = loop.time()

        while True:
            delay = next_tick - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)

            try:
                await job()
                subscription.ticks += 1
                subscription.last_error = None
            except Exception as e:
                subscription.failures += 1
                subscription.last_error = str(e)
                logger.error(
                    "Tick failed for %s (keeping last good result): %s",
                    subscription.consumer_id,
                    e,
                )

            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // interval) + 1
                next_tick += missed * interval
                subscription.skipped += missed
                logger.debug(
                    "%s overran its interval, skipped %d ticks",
                    subscription.consumer_id,
                    missed,
                )
