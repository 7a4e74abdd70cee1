# scenes.py
from enum import IntEnum
from typing import Dict


class Scene(IntEnum):
    OCEAN = 1
    ROMANCE = 2
    SUNSET = 3
    PARTY = 4
    FIREPLACE = 5
    COZY = 6
    FOREST = 7
    PASTEL_COLORS = 8
    WAKE_UP = 9
    BEDTIME = 10
    WARM_WHITE = 11
    DAYLIGHT = 12
    COOL_WHITE = 13
    NIGHT_LIGHT = 14
    FOCUS = 15
    RELAX = 16
    TRUE_COLORS = 17
    TV_TIME = 18
    PLANTGROWTH = 19
    SPRING = 20
    SUMMER = 21
    FALL = 22
    DEEPDIVE = 23
    JUNGLE = 24
    MOJITO = 25
    CLUB = 26
    CHRISTMAS = 27
    HALLOWEEN = 28
    CANDLELIGHT = 29
    GOLDEN_WHITE = 30
    PULSE = 31
    STEAMPUNK = 32
    DIWALI = 33

    @property
    def title(self) -> str:
        return self.name.replace("_", " ").title()


SCENES: Dict[int, str] = {scene.value: scene.title for scene in Scene}
