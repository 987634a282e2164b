"""Bounded wait for a proxy response.

Proxies answer a handshake request at their own pace. ``wait_for_data``
turns "has anything arrived yet" into a deterministic outcome: it polls the
transport every ``poll_interval`` seconds and raises ``ProxyTimeoutError``
once more than ``timeout`` seconds have been spent sleeping.

Cancellation is cooperative. The optional ``cancel_event`` is checked at the
boundary of each sleep (never in the middle of one) and raises
``ProxyCancelledError``. Operations that block on the network (connecting,
reading) go through ``run_cancellable`` instead, which races them against the
token and an optional deadline.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from proxy_tunnel.core.lib.transport import Transport
from proxy_tunnel.core.lib.translator import cancelled, response_timeout
from proxy_tunnel.core.models import HandshakeContext

T = TypeVar("T")


def check_cancelled(cancel_event: asyncio.Event | None, context: HandshakeContext) -> None:
    """Raise ``ProxyCancelledError`` if the caller asked to stop."""
    if cancel_event is not None and cancel_event.is_set():
        raise cancelled(context)


async def wait_for_data(
    transport: Transport,
    context: HandshakeContext,
    *,
    poll_interval: float,
    timeout: float,
    cancel_event: asyncio.Event | None = None,
) -> None:
    """Suspend until the transport has data to read.

    Args:
        transport: Transport the request was written to
        context: Proxy/destination pair for error messages
        poll_interval: Seconds to sleep between checks
        timeout: Seconds of sleeping after which the wait fails
        cancel_event: Optional cancellation token

    Raises:
        ProxyTimeoutError: If no data arrived within ``timeout``
        ProxyCancelledError: If ``cancel_event`` was set
    """
    polls = 0
    while not transport.data_available():
        check_cancelled(cancel_event, context)
        await asyncio.sleep(poll_interval)
        polls += 1
        check_cancelled(cancel_event, context)

        elapsed = polls * poll_interval
        if elapsed > timeout:
            logger.warning(f"No response from proxy {context.proxy_address} after {elapsed:.2f}s")
            raise response_timeout(context, elapsed)

    if polls:
        logger.debug(f"Proxy {context.proxy_address} answered after {polls} polls")


async def run_cancellable(
    awaitable: Awaitable[T],
    context: HandshakeContext,
    cancel_event: asyncio.Event | None = None,
    timeout: float | None = None,
) -> T:
    """Await ``awaitable`` unless the caller cancels or ``timeout`` runs out first.

    The losing operation is cancelled, so anything it opened is released by
    its own cleanup.

    Raises:
        ProxyCancelledError: If ``cancel_event`` was set before the operation finished
        asyncio.TimeoutError: If ``timeout`` elapsed before the operation finished
    """
    if cancel_event is None:
        return await asyncio.wait_for(awaitable, timeout)

    task = asyncio.ensure_future(awaitable)
    cancel_wait = asyncio.ensure_future(cancel_event.wait())
    try:
        done, _ = await asyncio.wait({task, cancel_wait}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancel_wait.cancel()
        if not task.done():
            task.cancel()

    if task in done:
        return task.result()
    # let the cancelled operation run its cleanup before reporting
    await asyncio.gather(task, return_exceptions=True)
    if cancel_event.is_set():
        logger.debug(f"Attempt through {context.proxy_address} cancelled while waiting on the proxy")
        raise cancelled(context)
    raise asyncio.TimeoutError()
