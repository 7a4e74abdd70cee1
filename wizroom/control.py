# control.py
"""
Fan a command out to a room (or a list of bulbs) and collect one outcome per bulb.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from wizroom import wiz_protocol
from wizroom.client import BulbClient
from wizroom.errors import ClientError, DecodeError, RequestCancelled
from wizroom.store import RoomRegistry
from wizroom.wiz_protocol import Ack, BulbAddress, BulbStatus, Command, GetStatus

logger = logging.getLogger(__name__)

Target = Union[str, Iterable[Union[BulbAddress, str]]]


@dataclass(frozen=True)
class Outcome:
    address: BulbAddress
    value: Optional[Union[BulbStatus, Ack]] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        if self.error is not None:
            return {"ok": False, "error": type(self.error).__name__, "detail": str(self.error)}
        return {"ok": True, "result": self.value.as_dict()}


def summarize(outcomes: Dict[BulbAddress, Outcome]) -> str:
    """Return "ok", "partial" or "failed" for a fan-out result."""
    failed = sum(1 for o in outcomes.values() if not o.ok)
    if failed == 0:
        return "ok"
    if failed == len(outcomes):
        return "failed"
    return "partial"


class LightController:
    def __init__(self, client: BulbClient, registry: Optional[RoomRegistry] = None):
        self.client = client
        self.registry = registry

    def resolve(self, target: Target) -> List[BulbAddress]:
        """Turn a room name or explicit addresses into distinct bulb addresses."""
        if isinstance(target, str):
            if self.registry is None:
                raise ValueError("no room registry configured")
            return sorted(self.registry.get(target).bulbs)
        seen = {}
        for item in target:
            address = BulbAddress.parse(item)
            seen[address] = None
        return list(seen)

    async def apply(
        self, target: Target, command: Command, deadline: Optional[float] = None
    ) -> Dict[BulbAddress, Outcome]:
        addresses = self.resolve(target)
        request = wiz_protocol.encode(command)
        if not addresses:
            return {}

        async def deliver(address: BulbAddress) -> Outcome:
            try:
                response = await self.client.send(address, request)
            except (ClientError, DecodeError) as exc:
                return Outcome(address, error=exc)
            try:
                if isinstance(command, GetStatus):
                    return Outcome(address, value=wiz_protocol.parse_status(response))
                return Outcome(address, value=Ack(response.result))
            except DecodeError as exc:
                return Outcome(address, error=exc)

        tasks = {address: asyncio.ensure_future(deliver(address)) for address in addresses}
        done, pending = await asyncio.wait(list(tasks.values()), timeout=deadline)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes = {}
        for address, task in tasks.items():
            if task in done:
                outcomes[address] = task.result()
            else:
                outcomes[address] = Outcome(address, error=RequestCancelled(address))

        failed = [str(a) for a, o in outcomes.items() if not o.ok]
        if failed:
            logger.warning("%s failed for %d/%d bulb(s): %s", request.method, len(failed), len(outcomes), ", ".join(failed))
        return outcomes

    async def status(self, target: Target, deadline: Optional[float] = None) -> Dict[BulbAddress, Outcome]:
        return await self.apply(target, GetStatus(), deadline=deadline)
