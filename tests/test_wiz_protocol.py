import json

import pytest

from wizroom import wiz_protocol
from wizroom.errors import MalformedResponse, ProtocolError, ValidationError
from wizroom.scenes import SCENES, Scene
from wizroom.wiz_protocol import (
    BulbAddress,
    GetStatus,
    Pilot,
    Reboot,
    SetBrightness,
    SetColor,
    SetCoolWhite,
    SetPower,
    SetScene,
    SetSpeed,
    SetTemperature,
    SetWarmWhite,
    WireRequest,
)


@pytest.mark.parametrize(
    "command",
    [
        SetPower(True),
        SetBrightness(10),
        SetColor(0, 128, 255),
        SetCoolWhite(1),
        SetWarmWhite(100),
        SetSpeed(200),
        SetTemperature(2700),
        SetScene(Scene.DIWALI),
        Reboot(),
        GetStatus(),
        Pilot((SetBrightness(40), SetColor(255, 0, 0))),
    ],
)
def test_encoded_request_survives_the_wire(command):
    request = wiz_protocol.encode(command)
    assert wiz_protocol.parse_request(request.to_bytes()) == request


def test_encode_uses_wiz_method_names_and_params():
    assert wiz_protocol.encode(SetPower(False)) == WireRequest("setState", {"state": False})
    assert wiz_protocol.encode(SetBrightness(55)) == WireRequest("setPilot", {"dimming": 55})
    assert wiz_protocol.encode(SetColor(1, 2, 3)) == WireRequest("setPilot", {"r": 1, "g": 2, "b": 3})
    assert wiz_protocol.encode(SetCoolWhite(5)) == WireRequest("setPilot", {"c": 5})
    assert wiz_protocol.encode(SetWarmWhite(6)) == WireRequest("setPilot", {"w": 6})
    assert wiz_protocol.encode(SetSpeed(150)) == WireRequest("setPilot", {"speed": 150})
    assert wiz_protocol.encode(SetTemperature(6500)) == WireRequest("setPilot", {"temp": 6500})
    assert wiz_protocol.encode(SetScene(6)) == WireRequest("setPilot", {"sceneId": 6})
    assert wiz_protocol.encode(Reboot()) == WireRequest("reboot", {})
    assert wiz_protocol.encode(GetStatus()) == WireRequest("getPilot", {})


def test_wire_format_is_compact_json():
    raw = wiz_protocol.encode(SetBrightness(80)).to_bytes()
    assert raw == b'{"method":"setPilot","params":{"dimming":80}}'


def test_pilot_merges_settings_into_one_request():
    pilot = Pilot((SetScene(Scene.COZY), SetBrightness(30), SetSpeed(120)))
    assert wiz_protocol.encode(pilot) == WireRequest("setPilot", {"sceneId": 6, "dimming": 30, "speed": 120})


@pytest.mark.parametrize(
    "settings",
    [(), (SetPower(True),), (Reboot(),), (Pilot((SetBrightness(20),)),)],
)
def test_pilot_only_takes_lighting_settings(settings):
    with pytest.raises(ValidationError):
        Pilot(settings)


@pytest.mark.parametrize(
    "factory, value",
    [
        (SetBrightness, 5),
        (SetBrightness, 150),
        (SetBrightness, True),
        (SetBrightness, 50.0),
        (SetCoolWhite, 0),
        (SetWarmWhite, 101),
        (SetSpeed, 19),
        (SetSpeed, 201),
        (SetTemperature, 999),
        (SetTemperature, 8001),
        (SetScene, 0),
        (SetScene, 34),
        (SetScene, "6"),
        (SetPower, 1),
    ],
)
def test_out_of_range_values_are_rejected(factory, value):
    with pytest.raises(ValidationError):
        factory(value)


def test_color_channels_are_range_checked():
    with pytest.raises(ValidationError):
        SetColor(256, 0, 0)
    with pytest.raises(ValidationError):
        SetColor(0, -1, 0)


def test_validation_error_is_a_value_error():
    with pytest.raises(ValueError):
        SetBrightness(0)


def test_color_parse():
    assert SetColor.parse("255, 10,0") == SetColor(255, 10, 0)
    for bad in ("255,0", "a,b,c", "1,2,3,4", "300,0,0"):
        with pytest.raises(ValidationError):
            SetColor.parse(bad)


def test_scene_catalogue():
    assert len(SCENES) == 33
    assert SetScene(6).scene is Scene.COZY
    assert Scene.PASTEL_COLORS.title == "Pastel Colors"
    assert SCENES[18] == "Tv Time"


def test_bulb_address():
    address = BulbAddress.parse(" 192.168.1.50 ")
    assert address == BulbAddress("192.168.1.50", 38899)
    assert str(address) == "192.168.1.50"
    assert str(BulbAddress("127.0.0.1", 5000)) == "127.0.0.1:5000"
    assert BulbAddress.parse(address) is address
    for bad in ("300.1.1.1", "bulb", "", "::1"):
        with pytest.raises(ValidationError):
            BulbAddress.parse(bad)
    with pytest.raises(ValidationError):
        BulbAddress("10.0.0.1", 0)


def test_decode_result():
    response = wiz_protocol.decode(b'{"method":"setPilot","env":"pro","result":{"success":true}}')
    assert response.method == "setPilot"
    assert response.env == "pro"
    assert response.result == {"success": True}


def test_decode_error_reply():
    data = json.dumps({"method": "setPilot", "env": "pro", "error": {"code": -32600, "message": "Invalid Request"}})
    with pytest.raises(ProtocolError) as info:
        wiz_protocol.decode(data.encode())
    assert info.value.code == -32600
    assert info.value.method == "setPilot"
    assert "Invalid Request" in str(info.value)


@pytest.mark.parametrize(
    "data",
    [b"\xff\xfe", b"not json", b"[]", b"{}", b'{"result": 3}', b'{"error": "nope"}', b""],
)
def test_decode_malformed(data):
    with pytest.raises(MalformedResponse):
        wiz_protocol.decode(data)


def test_parse_status_from_rgb_pilot():
    response = wiz_protocol.decode(
        b'{"method":"getPilot","env":"pro","result":{"mac":"a8bb50a4f94d","rssi":-60,"src":"",'
        b'"state":true,"sceneId":0,"r":255,"g":0,"b":0,"c":0,"w":0,"dimming":75}}'
    )
    status = wiz_protocol.parse_status(response)
    assert status.mac == "a8bb50a4f94d"
    assert status.emitting is True
    assert status.brightness == 75
    assert status.color == (255, 0, 0)
    assert status.scene is None
    assert status.rssi == -60
    assert status.as_dict()["color"] == [255, 0, 0]


def test_parse_status_from_scene_pilot():
    response = wiz_protocol.WireResponse(
        "getPilot", {"mac": "x", "state": False, "sceneId": 6, "speed": 100, "temp": 2700, "dimming": 40}
    )
    status = wiz_protocol.parse_status(response)
    assert status.emitting is False
    assert status.scene is Scene.COZY
    assert status.color is None
    assert status.temperature == 2700
    assert status.speed == 100
    assert status.as_dict()["scene_name"] == "Cozy"


def test_parse_status_requires_power_state():
    with pytest.raises(MalformedResponse):
        wiz_protocol.parse_status(wiz_protocol.WireResponse("getPilot", {"mac": "x"}))


def test_pilot_from_keeps_a_fixed_setting_order():
    pilot = wiz_protocol.pilot_from(warm=20, brightness=30, scene=6, color=SetColor(1, 2, 3))
    assert pilot == Pilot((SetScene(Scene.COZY), SetBrightness(30), SetColor(1, 2, 3), SetWarmWhite(20)))
    assert wiz_protocol.pilot_from() is None
    with pytest.raises(ValidationError):
        wiz_protocol.pilot_from(speed=10)
