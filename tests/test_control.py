import asyncio
import time

import pytest

from bulbsim import StubClient, start_bulb
from wizroom.client import BulbClient
from wizroom.control import LightController, Outcome, summarize
from wizroom.errors import BulbTimeout, MalformedResponse, RequestCancelled, RoomNotFound
from wizroom.store import RoomRegistry
from wizroom.wiz_protocol import Ack, BulbAddress, BulbStatus, GetStatus, SetBrightness, SetPower

A, B, C = BulbAddress("10.0.0.5"), BulbAddress("10.0.0.6"), BulbAddress("10.0.0.7")


@pytest.fixture
def registry(tmp_path):
    registry = RoomRegistry.load(tmp_path / "rooms.json")
    registry.create("bedroom")
    for address in (A, B, C):
        registry.add_bulb("bedroom", address)
    registry.create("attic")
    return registry


def test_room_fan_out_reports_every_bulb(registry):
    client = StubClient(failing=[B])
    outcomes = asyncio.run(LightController(client, registry).apply("bedroom", SetPower(True)))

    assert list(outcomes) == [A, B, C]
    assert outcomes[A].ok and outcomes[C].ok
    assert outcomes[A].value == Ack({"success": True})
    assert isinstance(outcomes[B].error, BulbTimeout)
    assert summarize(outcomes) == "partial"
    assert outcomes[B].as_dict()["error"] == "BulbTimeout"


def test_request_is_encoded_once(registry):
    client = StubClient()
    asyncio.run(LightController(client, registry).apply("bedroom", SetBrightness(40)))

    requests = [request for _, request in client.requests]
    assert len(requests) == 3
    assert all(r is requests[0] for r in requests)
    assert requests[0].params == {"dimming": 40}


def test_unknown_room(registry):
    with pytest.raises(RoomNotFound):
        asyncio.run(LightController(StubClient(), registry).apply("cellar", SetPower(False)))


def test_empty_room_sends_nothing(registry):
    client = StubClient()
    assert asyncio.run(LightController(client, registry).apply("attic", SetPower(False))) == {}
    assert client.requests == []


def test_explicit_addresses_are_deduplicated():
    client = StubClient()
    controller = LightController(client)
    outcomes = asyncio.run(controller.apply(["10.0.0.6", B, " 10.0.0.6", A], SetPower(True)))
    assert list(outcomes) == [B, A]
    assert len(client.requests) == 2


def test_room_target_needs_a_registry():
    with pytest.raises(ValueError):
        LightController(StubClient()).resolve("bedroom")


def test_status_against_live_bulbs():
    async def scenario():
        bulbs = [await start_bulb(), await start_bulb(silent=True)]
        try:
            async with BulbClient(timeout=0.2, max_retries=0) as client:
                controller = LightController(client)
                return await controller.status([b.address for b in bulbs]), bulbs
        finally:
            for b in bulbs:
                b.close()

    outcomes, bulbs = asyncio.run(scenario())
    live, silent = (outcomes[b.address] for b in bulbs)
    assert isinstance(live.value, BulbStatus)
    assert live.value.mac == "a8bb50a4f94d"
    assert live.value.brightness == 75
    assert isinstance(silent.error, BulbTimeout)
    assert summarize(outcomes) == "partial"


def test_deadline_cancels_stragglers(registry):
    client = StubClient(hang=[C])

    async def scenario():
        started = time.monotonic()
        outcomes = await LightController(client, registry).apply("bedroom", SetPower(True), deadline=0.2)
        return outcomes, time.monotonic() - started

    outcomes, elapsed = asyncio.run(scenario())
    assert elapsed < 2
    assert outcomes[A].ok and outcomes[B].ok
    assert isinstance(outcomes[C].error, RequestCancelled)
    assert outcomes[C].as_dict() == {
        "ok": False,
        "error": "RequestCancelled",
        "detail": "10.0.0.7: cancelled before a reply arrived",
    }


def test_cancelled_send_frees_the_bulb_for_the_next_caller():
    async def scenario():
        bulb = await start_bulb(silent=True)
        try:
            async with BulbClient(timeout=1.0, max_retries=0) as client:
                controller = LightController(client)
                first = await controller.apply([bulb.address], SetPower(True), deadline=0.1)
                bulb.silent = False
                second = await controller.apply([bulb.address], SetPower(True), deadline=1.0)
                return first, second, dict(client._inbox), client._lock_for(bulb.address).locked(), bulb
        finally:
            bulb.close()

    first, second, inbox, locked, bulb = asyncio.run(scenario())
    assert isinstance(first[bulb.address].error, RequestCancelled)
    assert second[bulb.address].ok
    assert inbox == {}
    assert not locked
    assert [r.method for r in bulb.requests] == ["setState", "setState"]


def test_status_reply_without_power_state_is_malformed(registry):
    client = StubClient(status={"mac": "a8bb50a4f94d", "dimming": 50})
    outcomes = asyncio.run(LightController(client, registry).status("bedroom"))
    assert all(isinstance(o.error, MalformedResponse) for o in outcomes.values())
    assert summarize(outcomes) == "failed"


def test_status_is_requested_with_get_pilot(registry):
    client = StubClient()
    asyncio.run(LightController(client, registry).apply("bedroom", GetStatus()))
    assert {request.method for _, request in client.requests} == {"getPilot"}


def test_summarize():
    ok = Outcome(A, value=Ack({"success": True}))
    bad = Outcome(B, error=BulbTimeout(B, 3))
    assert summarize({}) == "ok"
    assert summarize({A: ok}) == "ok"
    assert summarize({A: ok, B: bad}) == "partial"
    assert summarize({B: bad}) == "failed"
