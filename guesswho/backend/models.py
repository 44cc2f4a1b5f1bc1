"""Domain models shared by the session engine, the registry and the API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class GamePhase(str, Enum):
    LOBBY = "lobby"
    CHARACTER_SELECTION = "character_selection"
    PLAYING = "playing"
    ROUND_END = "round_end"
    GAME_END = "game_end"


class JoinResult(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FULL = "full"
    ALREADY_JOINED = "already_joined"


class ChatMessageKind(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"


class RoundEndReason(str, Enum):
    CORRECT_GUESS = "correct_guess"
    WRONG_GUESS = "wrong_guess"


class PostRoundDecision(str, Enum):
    NEW_ROUND = "new_round"
    END_GAME = "end_game"


@dataclass(frozen=True)
class ChatMessage:
    sender_name: str
    text: str
    kind: ChatMessageKind


@dataclass
class PlayerState:
    """A seated player: identity plus this round's play data."""

    token: str
    name: str
    slot: int
    mystery_person_ids: set[int] = field(default_factory=set)
    eliminated_ids: set[int] = field(default_factory=set)
    board_order: list[int] = field(default_factory=list)
    round_wins: int = 0

    @property
    def has_selected_mystery_people(self) -> bool:
        return len(self.mystery_person_ids) == 2

    def reset_round(self) -> None:
        self.mystery_person_ids.clear()
        self.eliminated_ids.clear()
        self.board_order.clear()
