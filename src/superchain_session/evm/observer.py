"""Observe eventual cross-chain effects: predicate polling and log subscriptions.

Cross-chain delivery has no synchronous confirmation and its latency is not
knowable locally, so the session exposes two independent primitives:

* :func:`wait_until` polls a caller-supplied predicate with an explicit
  timeout and interval and reports ``False`` when the effect was not observed.
* :meth:`CrossChainObserver.watch_events` scans a chain's logs from a starting
  block until the returned :class:`Subscription` is cancelled.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from ..exceptions import CallError, ValidationError
from ..types import EventLog
from ..utils import checksum
from .connections import ChainConnections

logger = logging.getLogger(__name__)

Predicate = Callable[[], Awaitable[bool] | bool]
LogCallback = Callable[[EventLog], Awaitable[None] | None]


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def wait_until(
    predicate: Predicate,
    timeout: float,
    interval: float,
    *,
    retry_on: tuple[type[BaseException], ...] = (CallError,),
) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` seconds elapse.

    Args:
        predicate: Sync or async callable returning a bool
        timeout: Upper bound in seconds, measured on the event loop clock
        interval: Pause between evaluations in seconds
        retry_on: Exception types treated as "not yet" instead of propagating

    Returns:
        True as soon as the predicate holds, False once the deadline passes
    """
    if timeout < 0:
        raise ValidationError("timeout must be non-negative", field="timeout", value=timeout)
    if interval <= 0:
        raise ValidationError("interval must be positive", field="interval", value=interval)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempt = 0

    while True:
        attempt += 1
        try:
            if await _resolve(predicate()):
                logger.debug("Predicate satisfied on attempt %s", attempt)
                return True
        except retry_on as exc:
            logger.debug("Predicate raised on attempt %s, retrying: %s", attempt, exc)

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.debug("Predicate not satisfied after %s attempt(s) in %.2fs", attempt, timeout)
            return False
        await asyncio.sleep(min(interval, remaining))


class Subscription:
    """A live log scan on one chain; call it (or :meth:`cancel`) to stop."""

    def __init__(self, chain_id: int, from_block: int, callback: LogCallback) -> None:
        self.chain_id = chain_id
        self.from_block = from_block
        self.callback = callback
        self.next_block = from_block
        self.delivered = 0
        self._cancelled = False
        self._task: asyncio.Task[None] | None = None
        self._error: BaseException | None = None
        self._on_close: Callable[[Subscription], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not self._cancelled and self._task is not None and not self._task.done()

    @property
    def error(self) -> BaseException | None:
        return self._error

    def cancel(self) -> None:
        """Stop scanning. Safe to call repeatedly; no callback fires after it returns."""

        if self._cancelled:
            return
        self._cancelled = True
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info(
            "Cancelled log subscription on chain %s at block %s (%s log(s) delivered)",
            self.chain_id,
            self.next_block,
            self.delivered,
        )
        self._closed()

    __call__ = cancel

    async def wait(self) -> None:
        """Wait for the scan to finish; re-raises a callback failure."""

        if self._task is not None:
            try:
                await asyncio.shield(self._task)
            except asyncio.CancelledError:
                if not self._task.cancelled():
                    raise
        if self._error is not None:
            raise self._error

    async def aclose(self) -> None:
        self.cancel()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _attach(self, task: asyncio.Task[None], on_close: Callable[[Subscription], None]) -> None:
        self._task = task
        self._on_close = on_close

    def _fail(self, exc: BaseException) -> None:
        self._error = exc
        self._cancelled = True
        self._closed()

    def _closed(self) -> None:
        on_close, self._on_close = self._on_close, None
        if on_close is not None:
            on_close(self)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return (
            f"Subscription(chain_id={self.chain_id}, from_block={self.from_block}, "
            f"next_block={self.next_block}, {state})"
        )


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class CrossChainObserver:
    """Poll remote state and stream chain logs for cross-chain effects."""

    def __init__(
        self,
        connections: ChainConnections,
        *,
        poll_timeout: float,
        poll_interval: float,
        log_poll_interval: float,
        max_block_range: int,
    ) -> None:
        self._connections = connections
        self._poll_timeout = poll_timeout
        self._poll_interval = poll_interval
        self._log_poll_interval = log_poll_interval
        self._max_block_range = max_block_range
        self._subscriptions: set[Subscription] = set()

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        return tuple(self._subscriptions)

    async def wait_until(
        self,
        predicate: Predicate,
        timeout: float | None = None,
        interval: float | None = None,
        *,
        retry_on: tuple[type[BaseException], ...] = (CallError,),
    ) -> bool:
        return await wait_until(
            predicate,
            self._poll_timeout if timeout is None else timeout,
            self._poll_interval if interval is None else interval,
            retry_on=retry_on,
        )

    def watch_events(
        self,
        chain_id: int,
        from_block: int,
        on_log: LogCallback,
        *,
        address: str | None = None,
        topics: Sequence[Any] | None = None,
        poll_interval: float | None = None,
    ) -> Subscription:
        """Deliver every log on ``chain_id`` from ``from_block`` onward to ``on_log``.

        Logs arrive in ascending block order and emission order within a block.
        ``address`` and ``topics`` narrow the node-side query; without them every
        log on the chain is delivered. Requires a running event loop.
        """

        if from_block < 0:
            raise ValidationError(
                "from_block must be non-negative", field="from_block", value=from_block
            )
        interval = self._log_poll_interval if poll_interval is None else poll_interval
        if interval <= 0:
            raise ValidationError(
                "poll_interval must be positive", field="poll_interval", value=interval
            )

        web3 = self._connections.web3_for(chain_id)
        log_filter: dict[str, Any] = {}
        if address is not None:
            log_filter["address"] = checksum(address)
        if topics is not None:
            log_filter["topics"] = list(topics)

        subscription = Subscription(chain_id, from_block, on_log)
        task = asyncio.get_running_loop().create_task(
            self._scan(subscription, web3, log_filter, interval),
            name=f"watch-events-{chain_id}-{from_block}",
        )
        subscription._attach(task, self._subscriptions.discard)
        self._subscriptions.add(subscription)
        logger.info("Watching logs on chain %s from block %s", chain_id, from_block)
        return subscription

    async def wait_for_event(
        self,
        chain_id: int,
        from_block: int,
        match: Callable[[EventLog], bool],
        timeout: float | None = None,
        *,
        address: str | None = None,
        topics: Sequence[Any] | None = None,
        poll_interval: float | None = None,
    ) -> EventLog | None:
        """Return the first matching log, or None if none arrives before ``timeout``."""

        found: asyncio.Future[EventLog] = asyncio.get_running_loop().create_future()

        def _on_log(log: EventLog) -> None:
            if not found.done() and match(log):
                found.set_result(log)

        subscription = self.watch_events(
            chain_id,
            from_block,
            _on_log,
            address=address,
            topics=topics,
            poll_interval=poll_interval,
        )
        waiter = asyncio.ensure_future(subscription.wait())
        try:
            done, _ = await asyncio.wait(
                {found, waiter},
                timeout=self._poll_timeout if timeout is None else timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if found in done:
                return found.result()
            if waiter in done:
                # Propagates a callback failure
                waiter.result()
            return None
        finally:
            waiter.cancel()
            await subscription.aclose()
            await asyncio.gather(waiter, return_exceptions=True)

    async def _scan(
        self,
        subscription: Subscription,
        web3: Any,
        log_filter: dict[str, Any],
        interval: float,
    ) -> None:
        chain_id = subscription.chain_id

        while not subscription.cancelled:
            try:
                head = int(await web3.eth.get_block_number())
                if head < subscription.next_block:
                    raw_logs: list[Any] = []
                    to_block = None
                else:
                    to_block = min(head, subscription.next_block + self._max_block_range - 1)
                    raw_logs = await web3.eth.get_logs(
                        {**log_filter, "fromBlock": subscription.next_block, "toBlock": to_block}
                    )
                logs = sorted(
                    (EventLog.from_web3(chain_id, raw) for raw in raw_logs),
                    key=lambda log: log.position,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning(
                    "Log scan on chain %s from block %s failed, retrying: %s",
                    chain_id,
                    subscription.next_block,
                    exc,
                )
                await asyncio.sleep(interval)
                continue

            for log in logs:
                if subscription.cancelled:
                    return
                try:
                    await _resolve(subscription.callback(log))
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.exception(
                        "Log callback failed on chain %s at block %s; ending subscription",
                        chain_id,
                        log.block_number,
                    )
                    subscription._fail(exc)
                    return
                subscription.delivered += 1

            if to_block is not None:
                logger.debug(
                    "Scanned chain %s blocks %s-%s (%s log(s))",
                    chain_id,
                    subscription.next_block,
                    to_block,
                    len(logs),
                )
                subscription.next_block = to_block + 1
                if to_block < head:
                    # More history to catch up on before pausing
                    continue

            await asyncio.sleep(interval)
