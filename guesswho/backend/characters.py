"""Static catalog of the 24 Guess Who characters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class HairColor(str, Enum):
    BLACK = "black"
    BROWN = "brown"
    BLONDE = "blonde"
    RED = "red"
    WHITE = "white"


class EyeColor(str, Enum):
    BLUE = "blue"
    BROWN = "brown"


class HairLength(str, Enum):
    SHORT = "short"
    LONG = "long"


@dataclass(frozen=True)
class Character:
    id: int
    name: str
    hair_color: HairColor
    eye_color: EyeColor
    glasses: bool
    hat: bool
    facial_hair: bool
    hair_length: HairLength
    bald: bool
    rosy_cheeks: bool
    big_nose: bool


_BLACK, _BROWN, _BLONDE, _RED, _WHITE = (
    HairColor.BLACK,
    HairColor.BROWN,
    HairColor.BLONDE,
    HairColor.RED,
    HairColor.WHITE,
)
_BLUE_EYES, _BROWN_EYES = EyeColor.BLUE, EyeColor.BROWN
_SHORT, _LONG = HairLength.SHORT, HairLength.LONG

# id, name, hair, eyes, glasses, hat, facial hair, length, bald, rosy cheeks, big nose
CHARACTERS: tuple[Character, ...] = (
    Character(1, "Alex", _BROWN, _BLUE_EYES, False, False, False, _SHORT, False, True, False),
    Character(2, "Bernard", _BLACK, _BROWN_EYES, False, True, True, _SHORT, False, False, True),
    Character(3, "Claire", _BLONDE, _BLUE_EYES, False, False, False, _LONG, False, False, False),
    Character(4, "David", _WHITE, _BROWN_EYES, True, False, True, _SHORT, False, False, False),
    Character(5, "Emma", _RED, _BLUE_EYES, False, True, False, _LONG, False, True, False),
    Character(6, "Felix", _BROWN, _BROWN_EYES, True, False, True, _SHORT, False, False, True),
    Character(7, "Grace", _BLONDE, _BLUE_EYES, False, False, False, _LONG, False, True, False),
    Character(8, "Henry", _BLACK, _BROWN_EYES, False, False, True, _SHORT, False, False, False),
    Character(9, "Iris", _RED, _BROWN_EYES, False, False, False, _LONG, False, False, False),
    Character(10, "Jake", _BROWN, _BLUE_EYES, True, True, False, _SHORT, False, False, False),
    Character(11, "Kate", _BLONDE, _BLUE_EYES, False, True, False, _LONG, False, True, False),
    Character(12, "Leo", _BLACK, _BROWN_EYES, False, False, True, _SHORT, False, False, True),
    Character(13, "Maria", _BROWN, _BROWN_EYES, False, False, False, _LONG, False, False, False),
    Character(14, "Nick", _WHITE, _BLUE_EYES, True, False, True, _SHORT, False, False, True),
    Character(15, "Olivia", _BLONDE, _BROWN_EYES, False, True, False, _LONG, False, True, False),
    Character(16, "Peter", _RED, _BROWN_EYES, True, False, True, _SHORT, False, False, False),
    Character(17, "Quinn", _BLACK, _BLUE_EYES, False, False, False, _SHORT, False, False, False),
    Character(18, "Rachel", _BROWN, _BLUE_EYES, False, False, False, _LONG, False, True, True),
    Character(19, "Sam", _WHITE, _BROWN_EYES, False, True, True, _SHORT, True, False, False),
    Character(20, "Tara", _BLONDE, _BLUE_EYES, True, False, False, _LONG, False, False, False),
    Character(21, "Uma", _RED, _BROWN_EYES, False, False, False, _LONG, False, True, False),
    Character(22, "Victor", _BLACK, _BROWN_EYES, True, True, True, _SHORT, False, False, True),
    Character(23, "Wendy", _BROWN, _BLUE_EYES, False, True, False, _LONG, False, False, False),
    Character(24, "Zack", _WHITE, _BROWN_EYES, False, False, True, _SHORT, True, False, True),
)

_BY_ID: dict[int, Character] = {character.id: character for character in CHARACTERS}


def get_character(character_id: int) -> Character | None:
    return _BY_ID.get(character_id)


def character_ids() -> list[int]:
    """Return every valid character id in catalog order."""
    return [character.id for character in CHARACTERS]


def is_valid_character_id(character_id: int) -> bool:
    return character_id in _BY_ID
