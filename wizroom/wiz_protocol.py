"""
WiZ protocol builder + parser.

Bulbs listen for JSON datagrams ``{"method": ..., "params": {...}}`` on UDP
port 38899 and answer with an object carrying either ``result`` or ``error``.
Nothing in a reply identifies the request it answers.
"""

import ipaddress
import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from wizroom import config
from wizroom.errors import MalformedResponse, ProtocolError, ValidationError
from wizroom.scenes import SCENES, Scene


@dataclass(frozen=True, order=True)
class BulbAddress:
    ip: str
    port: int = config.WIZ_PORT

    def __post_init__(self):
        if not isinstance(self.ip, str):
            raise ValidationError(f"not an IPv4 address: {self.ip!r}")
        try:
            ip = ipaddress.IPv4Address(self.ip.strip())
        except ValueError:
            raise ValidationError(f"not an IPv4 address: {self.ip!r}") from None
        _check_range("port", self.port, 1, 65535)
        object.__setattr__(self, "ip", str(ip))

    @classmethod
    def parse(cls, value: Union["BulbAddress", str]) -> "BulbAddress":
        if isinstance(value, cls):
            return value
        return cls(value)

    def as_tuple(self) -> Tuple[str, int]:
        return (self.ip, self.port)

    def __str__(self) -> str:
        if self.port == config.WIZ_PORT:
            return self.ip
        return f"{self.ip}:{self.port}"


def _check_range(name: str, value: Any, low: int, high: int) -> None:
    # bool is an int subclass; True is not a brightness
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}")


class Command:
    """Base for every bulb command. Subclasses validate on construction."""

    method = ""

    def params(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class SetPower(Command):
    on: bool

    method = "setState"

    def __post_init__(self):
        if not isinstance(self.on, bool):
            raise ValidationError(f"power must be true or false, got {self.on!r}")

    def params(self):
        return {"state": self.on}


@dataclass(frozen=True)
class SetBrightness(Command):
    value: int

    method = "setPilot"

    def __post_init__(self):
        _check_range("brightness", self.value, 10, 100)

    def params(self):
        return {"dimming": self.value}


@dataclass(frozen=True)
class SetColor(Command):
    red: int
    green: int
    blue: int

    method = "setPilot"

    def __post_init__(self):
        _check_range("red", self.red, 0, 255)
        _check_range("green", self.green, 0, 255)
        _check_range("blue", self.blue, 0, 255)

    @classmethod
    def parse(cls, text: str) -> "SetColor":
        """Build a colour from ``"r,g,b"``."""
        parts = [p.strip() for p in text.split(",")]
        if len(parts) != 3:
            raise ValidationError(f"color must be r,g,b, got {text!r}")
        try:
            red, green, blue = (int(p, 10) for p in parts)
        except ValueError:
            raise ValidationError(f"color must be r,g,b, got {text!r}") from None
        return cls(red, green, blue)

    def params(self):
        return {"r": self.red, "g": self.green, "b": self.blue}


@dataclass(frozen=True)
class SetCoolWhite(Command):
    value: int

    method = "setPilot"

    def __post_init__(self):
        _check_range("cool white", self.value, 1, 100)

    def params(self):
        return {"c": self.value}


@dataclass(frozen=True)
class SetWarmWhite(Command):
    value: int

    method = "setPilot"

    def __post_init__(self):
        _check_range("warm white", self.value, 1, 100)

    def params(self):
        return {"w": self.value}


@dataclass(frozen=True)
class SetSpeed(Command):
    value: int

    method = "setPilot"

    def __post_init__(self):
        _check_range("speed", self.value, 20, 200)

    def params(self):
        return {"speed": self.value}


@dataclass(frozen=True)
class SetTemperature(Command):
    kelvin: int

    method = "setPilot"

    def __post_init__(self):
        _check_range("temperature", self.kelvin, 1000, 8000)

    def params(self):
        return {"temp": self.kelvin}


@dataclass(frozen=True)
class SetScene(Command):
    scene: Scene

    method = "setPilot"

    def __post_init__(self):
        if isinstance(self.scene, bool) or not isinstance(self.scene, int) or self.scene not in SCENES:
            raise ValidationError(f"unknown scene id: {self.scene!r}")
        object.__setattr__(self, "scene", Scene(self.scene))

    def params(self):
        return {"sceneId": int(self.scene)}


@dataclass(frozen=True)
class Reboot(Command):
    method = "reboot"


@dataclass(frozen=True)
class GetStatus(Command):
    method = "getPilot"


@dataclass(frozen=True)
class Pilot(Command):
    """Several lighting settings sent as a single ``setPilot`` datagram."""

    settings: Tuple[Command, ...]

    method = "setPilot"

    def __post_init__(self):
        settings = tuple(self.settings)
        if not settings:
            raise ValidationError("no lighting settings given")
        for setting in settings:
            if isinstance(setting, Pilot) or setting.method != "setPilot":
                raise ValidationError(f"{type(setting).__name__} cannot be combined into a pilot")
        object.__setattr__(self, "settings", settings)

    def params(self):
        merged: Dict[str, Any] = {}
        for setting in self.settings:
            merged.update(setting.params())
        return merged


def pilot_from(
    scene: Optional[int] = None,
    brightness: Optional[int] = None,
    color: Optional[SetColor] = None,
    speed: Optional[int] = None,
    temp: Optional[int] = None,
    cool: Optional[int] = None,
    warm: Optional[int] = None,
) -> Optional[Pilot]:
    """Combine the given lighting settings into one Pilot, or None if none are set."""
    settings = []
    if scene is not None:
        settings.append(SetScene(scene))
    if brightness is not None:
        settings.append(SetBrightness(brightness))
    if color is not None:
        settings.append(color)
    if speed is not None:
        settings.append(SetSpeed(speed))
    if temp is not None:
        settings.append(SetTemperature(temp))
    if cool is not None:
        settings.append(SetCoolWhite(cool))
    if warm is not None:
        settings.append(SetWarmWhite(warm))
    return Pilot(tuple(settings)) if settings else None


@dataclass(frozen=True)
class WireRequest:
    method: str
    params: Dict[str, Any] = field(default_factory=dict)

    def to_bytes(self) -> bytes:
        body = {"method": self.method, "params": self.params}
        return json.dumps(body, separators=(",", ":")).encode("utf-8")


@dataclass(frozen=True)
class WireResponse:
    method: Optional[str]
    result: Dict[str, Any]
    env: Optional[str] = None


@dataclass(frozen=True)
class Ack:
    """Reply to a command that changes the bulb."""

    result: Dict[str, Any]

    def as_dict(self) -> Dict[str, Any]:
        return dict(self.result)


@dataclass(frozen=True)
class BulbStatus:
    mac: Optional[str]
    emitting: bool
    brightness: Optional[int] = None
    color: Optional[Tuple[int, int, int]] = None
    temperature: Optional[int] = None
    cool: Optional[int] = None
    warm: Optional[int] = None
    scene: Optional[Scene] = None
    speed: Optional[int] = None
    rssi: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "mac": self.mac,
            "emitting": self.emitting,
            "brightness": self.brightness,
            "color": list(self.color) if self.color else None,
            "temperature": self.temperature,
            "cool": self.cool,
            "warm": self.warm,
            "scene": int(self.scene) if self.scene else None,
            "scene_name": self.scene.title if self.scene else None,
            "speed": self.speed,
            "rssi": self.rssi,
        }


def encode(command: Command) -> WireRequest:
    return WireRequest(command.method, command.params())


def _load(data: bytes) -> Dict[str, Any]:
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedResponse(f"not a JSON datagram: {exc}") from None
    if not isinstance(payload, dict):
        raise MalformedResponse("datagram is not a JSON object")
    return payload


def parse_request(data: bytes) -> WireRequest:
    payload = _load(data)
    method = payload.get("method")
    params = payload.get("params", {})
    if not isinstance(method, str) or not isinstance(params, dict):
        raise MalformedResponse("request needs a method name and a params object")
    return WireRequest(method, params)


def decode(data: bytes) -> WireResponse:
    payload = _load(data)
    method = payload.get("method")
    if not isinstance(method, str):
        method = None

    if "error" in payload:
        error = payload["error"]
        if not isinstance(error, dict):
            raise MalformedResponse("error field is not an object")
        raise ProtocolError(error.get("code"), str(error.get("message", "")), method)

    result = payload.get("result")
    if not isinstance(result, dict):
        raise MalformedResponse("reply carries neither a result nor an error object")
    env = payload.get("env")
    return WireResponse(method, result, env if isinstance(env, str) else None)


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def parse_status(response: WireResponse) -> BulbStatus:
    """Conservative parser for getPilot results."""
    res = response.result
    if not isinstance(res.get("state"), bool):
        raise MalformedResponse("status reply has no power state")

    rgb = tuple(_int_or_none(res.get(k)) for k in ("r", "g", "b"))
    scene_id = _int_or_none(res.get("sceneId"))
    mac = res.get("mac")
    return BulbStatus(
        mac=mac if isinstance(mac, str) else None,
        emitting=res["state"],
        brightness=_int_or_none(res.get("dimming")),
        color=rgb if None not in rgb else None,
        temperature=_int_or_none(res.get("temp")),
        cool=_int_or_none(res.get("c")),
        warm=_int_or_none(res.get("w")),
        scene=Scene(scene_id) if scene_id in SCENES else None,
        speed=_int_or_none(res.get("speed")),
        rssi=_int_or_none(res.get("rssi")),
    )
