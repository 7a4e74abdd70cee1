from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional

from wizroom.errors import ValidationError
from wizroom.wiz_protocol import Command, Reboot, SetColor, SetPower, pilot_from


class RoomIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class RoomOut(BaseModel):
    name: str
    lights: List[str] = []


class LightIn(BaseModel):
    ip: str = Field(..., examples=["192.168.1.50"])


class Color(BaseModel):
    red: int
    green: int
    blue: int


class LightRequest(BaseModel):
    power: Optional[Literal["on", "off", "reboot"]] = None
    brightness: Optional[int] = Field(None, description="10-100")
    color: Optional[Color] = None
    speed: Optional[int] = Field(None, description="20-200")
    temp: Optional[int] = Field(None, description="Kelvin, 1000-8000")
    scene: Optional[int] = Field(None, description="scene id, see wizroom.scenes")
    cool: Optional[int] = Field(None, description="1-100")
    warm: Optional[int] = Field(None, description="1-100")

    def commands(self) -> List[Command]:
        """Lighting settings first as one pilot, then the power change."""
        commands: List[Command] = []
        pilot = pilot_from(
            scene=self.scene,
            brightness=self.brightness,
            color=SetColor(self.color.red, self.color.green, self.color.blue) if self.color else None,
            speed=self.speed,
            temp=self.temp,
            cool=self.cool,
            warm=self.warm,
        )
        if pilot is not None:
            commands.append(pilot)

        # setPilot lights the bulb, so an "off" has to come after it
        if self.power == "reboot":
            commands.append(Reboot())
        elif self.power is not None:
            commands.append(SetPower(self.power == "on"))

        if not commands:
            raise ValidationError("invalid payload; no attributes set")
        return commands


class TargetedLightRequest(LightRequest):
    ips: List[str] = Field(..., min_length=1)


class LightOutcome(BaseModel):
    ok: bool
    result: Optional[dict] = None
    error: Optional[str] = None
    detail: Optional[str] = None


class CommandReport(BaseModel):
    method: str
    summary: Literal["ok", "partial", "failed"]
    lights: Dict[str, LightOutcome]


class ApplyReport(BaseModel):
    results: List[CommandReport]
