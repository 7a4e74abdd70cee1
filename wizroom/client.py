# client.py
"""
Async UDP client for WiZ bulbs.

One datagram endpoint is shared by every request. Replies carry no request id,
so each bulb address has at most one exchange in flight: a per-address lock is
held from the first transmission until a reply is accepted or the attempts run
out, and incoming datagrams are routed to the exchange by source address.

A failed send is normally reported while ``sendto`` is still running. A
datagram the transport had to buffer fails later; that error is handed to the
open exchange when there is exactly one, and only logged otherwise.
"""

import asyncio
import logging
from typing import Dict, Optional, Tuple

from wizroom import config, wiz_protocol
from wizroom.errors import BulbTimeout, BulbUnreachable, MalformedResponse, ProtocolError
from wizroom.wiz_protocol import BulbAddress, WireRequest, WireResponse

logger = logging.getLogger(__name__)


class BulbProtocol(asyncio.DatagramProtocol):
    def __init__(self, client: "BulbClient"):
        self.client = client
        self.transport = None

    def connection_made(self, transport):
        self.transport = transport
        logger.debug("WiZ UDP endpoint ready on %s", transport.get_extra_info("sockname"))

    def datagram_received(self, data: bytes, addr):
        self.client.datagram_received(data, addr)

    def error_received(self, exc):
        logger.debug("UDP error: %s", exc)
        self.client.error_received(exc)

    def connection_lost(self, exc):
        if exc is not None:
            logger.warning("WiZ UDP endpoint closed: %s", exc)


class BulbClient:
    def __init__(
        self,
        timeout: float = config.BULB_TIMEOUT,
        max_retries: int = config.BULB_RETRIES,
        local_addr: Tuple[str, int] = ("0.0.0.0", 0),
    ):
        self.timeout = timeout
        self.max_retries = max_retries
        self.local_addr = local_addr
        self._transport = None
        self._protocol: Optional[BulbProtocol] = None
        self._locks: Dict[BulbAddress, asyncio.Lock] = {}
        self._inbox: Dict[Tuple[str, int], asyncio.Queue] = {}
        self._transmitting = False
        self._send_error: Optional[OSError] = None

    async def start(self) -> "BulbClient":
        if self._transport is None:
            loop = asyncio.get_running_loop()
            self._transport, self._protocol = await loop.create_datagram_endpoint(
                lambda: BulbProtocol(self),
                local_addr=self.local_addr,
            )
        return self

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
            self._protocol = None

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, *exc_info):
        self.close()

    def datagram_received(self, data: bytes, addr) -> None:
        queue = self._inbox.get((addr[0], addr[1]))
        if queue is None:
            logger.debug("Dropping unsolicited datagram from %s:%s", addr[0], addr[1])
            return
        queue.put_nowait(data)

    def error_received(self, exc: OSError) -> None:
        if self._transmitting:
            # selector transports report a failed sendto() here, synchronously
            self._send_error = exc
            return
        if len(self._inbox) == 1:
            next(iter(self._inbox.values())).put_nowait(exc)
        else:
            logger.warning("UDP send failed with %d exchange(s) open: %s", len(self._inbox), exc)

    def _lock_for(self, address: BulbAddress) -> asyncio.Lock:
        lock = self._locks.get(address)
        if lock is None:
            lock = self._locks[address] = asyncio.Lock()
        return lock

    async def send(
        self,
        address: BulbAddress,
        request: WireRequest,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
    ) -> WireResponse:
        """Send ``request`` and return the bulb's reply.

        Raises BulbTimeout once ``max_retries + 1`` transmissions went
        unanswered, BulbUnreachable if the datagram could not be sent, and
        ProtocolError if the bulb answered with an error object.
        """
        if self._transport is None:
            raise RuntimeError("BulbClient.start() has not been awaited")
        timeout = self.timeout if timeout is None else timeout
        max_retries = self.max_retries if max_retries is None else max_retries
        payload = request.to_bytes()

        async with self._lock_for(address):
            queue: asyncio.Queue = asyncio.Queue()
            self._inbox[address.as_tuple()] = queue
            try:
                for attempt in range(1, max_retries + 2):
                    if attempt > 1:
                        logger.debug("Retrying %s to %s (attempt %d)", request.method, address, attempt)
                    self._transmit(address, payload)
                    response = await self._await_reply(address, request.method, queue, timeout)
                    if response is not None:
                        return response
            finally:
                self._inbox.pop(address.as_tuple(), None)

        logger.warning("%s did not answer %s after %d attempt(s)", address, request.method, max_retries + 1)
        raise BulbTimeout(address, max_retries + 1)

    def _transmit(self, address: BulbAddress, payload: bytes) -> None:
        self._send_error = None
        self._transmitting = True
        try:
            self._transport.sendto(payload, address.as_tuple())
        except OSError as exc:
            self._send_error = exc
        finally:
            self._transmitting = False
        exc = self._send_error
        if exc is not None:
            logger.warning("Cannot reach %s: %s", address, exc)
            raise BulbUnreachable(address, exc)

    async def _await_reply(
        self, address: BulbAddress, method: str, queue: asyncio.Queue, timeout: float
    ) -> Optional[WireResponse]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            try:
                data = await asyncio.wait_for(queue.get(), remaining)
            except asyncio.TimeoutError:
                return None

            if isinstance(data, OSError):
                logger.warning("Cannot reach %s: %s", address, data)
                raise BulbUnreachable(address, data)

            try:
                response = wiz_protocol.decode(data)
            except MalformedResponse as exc:
                logger.debug("Ignoring stray datagram from %s: %s", address, exc)
                continue
            except ProtocolError as exc:
                if exc.method and exc.method != method:
                    logger.debug("Ignoring stray %s error from %s", exc.method, address)
                    continue
                raise

            if response.method and response.method != method:
                logger.debug("Ignoring stray %s reply from %s", response.method, address)
                continue
            return response
