"""Game session state machine.

A session moves LOBBY -> CHARACTER_SELECTION -> PLAYING -> ROUND_END and from
there either back to CHARACTER_SELECTION or on to GAME_END. Every command
validates the phase and the caller's token; a command whose precondition
fails is ignored without raising, because the two clients send commands at
their own pace and stale or duplicate messages are routine.
"""

from __future__ import annotations

from datetime import datetime, timedelta
import functools
import logging
import random
import threading
from typing import Callable

from .characters import character_ids, is_valid_character_id
from .models import (
    ChatMessage,
    ChatMessageKind,
    GamePhase,
    JoinResult,
    PlayerState,
    PostRoundDecision,
    RoundEndReason,
)
from .timing import Clock, Scheduler, ThreadingScheduler, TimerHandle, utc_now

logger = logging.getLogger(__name__)

ROUNDS_TO_WIN = 5
POST_ROUND_TIMEOUT_SECONDS = 60.0
ANSWER_COUNTDOWN_SECONDS = 10

Listener = Callable[[], None]


class GameSession:
    """One two-player game, guarded by its own lock.

    Mutating commands hold the lock for their whole duration and notify
    listeners only after releasing it. Display-only reads (chat log,
    countdown) may be taken without the lock.
    """

    def __init__(
        self,
        code: str,
        *,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
        post_round_timeout_seconds: float = POST_ROUND_TIMEOUT_SECONDS,
    ) -> None:
        self.code = code
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._post_round_timeout_seconds = post_round_timeout_seconds
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []
        self._post_round_timer: TimerHandle | None = None

        self.player1: PlayerState | None = None
        self.player2: PlayerState | None = None
        self.phase = GamePhase.LOBBY
        self.round_number = 0
        self.active_player_token = ""
        self.question_asked = False
        self.chat_log: list[ChatMessage] = []
        self.end_reason: RoundEndReason | None = None
        self.round_winner_token: str | None = None
        self.is_match_over = False
        self.match_winner_token: str | None = None
        self.countdown_started_at: datetime | None = None
        self.post_round_decisions: dict[str, PostRoundDecision] = {}
        self.created_at = clock()
        self.last_activity_at = self.created_at
        self.closed = False

    # Observers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener and return a callable that removes it."""
        self._listeners = [*self._listeners, listener]

        def unsubscribe() -> None:
            self._listeners = [existing for existing in self._listeners if existing is not listener]

        return unsubscribe

    def _notify_state_changed(self) -> None:
        self._call_listeners(self._listeners)

    def _call_listeners(self, listeners: list[Listener]) -> None:
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("State change listener failed for session %s", self.code)

    # Queries

    @property
    def is_full(self) -> bool:
        return self.player1 is not None and self.player2 is not None

    @property
    def awaiting_answer(self) -> bool:
        chat_log = self.chat_log
        return self.question_asked and bool(chat_log) and chat_log[-1].kind == ChatMessageKind.QUESTION

    @property
    def countdown_active(self) -> bool:
        return self.countdown_started_at is not None

    @property
    def countdown_ends_at(self) -> datetime | None:
        started_at = self.countdown_started_at
        if started_at is None:
            return None
        return started_at + timedelta(seconds=ANSWER_COUNTDOWN_SECONDS)

    def get_player(self, token: str) -> PlayerState | None:
        if self.player1 is not None and self.player1.token == token:
            return self.player1
        if self.player2 is not None and self.player2.token == token:
            return self.player2
        return None

    def get_opponent(self, token: str) -> PlayerState | None:
        if self.player1 is not None and self.player1.token == token:
            return self.player2
        if self.player2 is not None and self.player2.token == token:
            return self.player1
        return None

    def is_active_player(self, token: str) -> bool:
        return token != "" and token == self.active_player_token

    def get_post_round_decision(self, token: str) -> PostRoundDecision | None:
        return self.post_round_decisions.get(token)

    def is_reclaimable(self, now: datetime, idle_timeout: timedelta) -> bool:
        """True once the game has ended or nothing happened for longer than idle_timeout."""
        with self._lock:
            phase = self.phase
            last_activity_at = self.last_activity_at
        return phase == GamePhase.GAME_END or now - last_activity_at > idle_timeout

    # Commands

    def add_player(self, token: str, name: str) -> JoinResult:
        with self._lock:
            if self.get_player(token) is not None:
                return JoinResult.ALREADY_JOINED
            if self.player1 is None:
                self.player1 = PlayerState(token=token, name=name, slot=1)
            elif self.player2 is None:
                self.player2 = PlayerState(token=token, name=name, slot=2)
                self.phase = GamePhase.CHARACTER_SELECTION
            else:
                return JoinResult.FULL
            self._touch()
        self._notify_state_changed()
        return JoinResult.SUCCESS

    def select_mystery_people(self, token: str, first_id: int, second_id: int) -> None:
        with self._lock:
            if self.phase != GamePhase.CHARACTER_SELECTION:
                return
            player = self.get_player(token)
            if player is None or player.has_selected_mystery_people:
                return
            if first_id == second_id:
                return
            if not (is_valid_character_id(first_id) and is_valid_character_id(second_id)):
                return
            player.mystery_person_ids = {first_id, second_id}
            if self._both_players_selected():
                self._start_round()
            self._touch()
        self._notify_state_changed()

    def start_next_turn(self, token: str) -> None:
        with self._lock:
            if self.phase != GamePhase.PLAYING or not self.is_active_player(token):
                return
            opponent = self.get_opponent(token)
            if opponent is None:
                return
            self.active_player_token = opponent.token
            self.question_asked = False
            self.countdown_started_at = None
            self._touch()
        self._notify_state_changed()

    def ask_question(self, token: str, text: str) -> None:
        question = text.strip()
        with self._lock:
            if self.phase != GamePhase.PLAYING or not self.is_active_player(token):
                return
            if self.question_asked or question == "":
                return
            player = self.get_player(token)
            if player is None:
                return
            self.chat_log = [
                *self.chat_log,
                ChatMessage(sender_name=player.name, text=question, kind=ChatMessageKind.QUESTION),
            ]
            self.question_asked = True
            self._touch()
        self._notify_state_changed()

    def answer_question(self, token: str, answer: str) -> None:
        """Record the opponent's reply; the payload is free-form ("Yes", "Both", "Neither", ...)."""
        reply = answer.strip()
        with self._lock:
            if self.phase != GamePhase.PLAYING or self.is_active_player(token):
                return
            player = self.get_player(token)
            if player is None or not self.awaiting_answer or reply == "":
                return
            self.chat_log = [
                *self.chat_log,
                ChatMessage(sender_name=player.name, text=reply, kind=ChatMessageKind.ANSWER),
            ]
            self.countdown_started_at = self._clock()
            self._touch()
        self._notify_state_changed()

    def eliminate_character(self, token: str, character_id: int) -> None:
        with self._lock:
            if self.phase != GamePhase.PLAYING or not self.is_active_player(token):
                return
            player = self.get_player(token)
            if player is None or not is_valid_character_id(character_id):
                return
            if character_id in player.mystery_person_ids or character_id in player.eliminated_ids:
                return
            player.eliminated_ids.add(character_id)
            self._touch()
        self._notify_state_changed()

    def make_guess(self, token: str, first_id: int, second_id: int) -> None:
        with self._lock:
            if self.phase != GamePhase.PLAYING or not self.is_active_player(token):
                return
            if first_id == second_id:
                return
            guesser = self.get_player(token)
            opponent = self.get_opponent(token)
            if guesser is None or opponent is None:
                return

            correct = {first_id, second_id} == opponent.mystery_person_ids
            winner = guesser if correct else opponent
            winner.round_wins += 1
            self.round_winner_token = winner.token
            self.end_reason = RoundEndReason.CORRECT_GUESS if correct else RoundEndReason.WRONG_GUESS
            if winner.round_wins >= ROUNDS_TO_WIN:
                self.is_match_over = True
                self.match_winner_token = winner.token
            self.countdown_started_at = None
            self.post_round_decisions = {}
            self.phase = GamePhase.ROUND_END
            self._touch()
            logger.info(
                "Session %s round %s won by slot %s (%s)",
                self.code,
                self.round_number,
                winner.slot,
                self.end_reason.value,
            )
        self._notify_state_changed()

    def make_post_round_decision(self, token: str, decision: PostRoundDecision) -> None:
        with self._lock:
            if self.phase != GamePhase.ROUND_END or self.get_player(token) is None:
                return
            if self.post_round_decisions.get(token) == decision:
                return
            self.post_round_decisions = {**self.post_round_decisions, token: decision}
            if self._post_round_timer is None:
                self._post_round_timer = self._scheduler.call_later(
                    self._post_round_timeout_seconds,
                    functools.partial(self._on_post_round_timeout, self.round_number),
                )
            if self._post_round_decisions_agree():
                self._cancel_post_round_timer()
                if decision == PostRoundDecision.NEW_ROUND:
                    self._begin_new_round()
                else:
                    self.phase = GamePhase.GAME_END
                    logger.info("Session %s ended by agreement", self.code)
            self._touch()
        self._notify_state_changed()

    def close(self) -> None:
        """Disarm pending timers and detach listeners; called when the registry forgets the session.

        Listeners get one last notification with ``closed`` already set so they
        can release whatever they hold for this session.
        """
        with self._lock:
            if self.closed:
                return
            self.closed = True
            self._cancel_post_round_timer()
        listeners = self._listeners
        self._listeners = []
        self._call_listeners(listeners)

    # Internals

    def _touch(self) -> None:
        self.last_activity_at = self._clock()

    def _both_players_selected(self) -> bool:
        return (
            self.player1 is not None
            and self.player2 is not None
            and self.player1.has_selected_mystery_people
            and self.player2.has_selected_mystery_people
        )

    def _start_round(self) -> None:
        if self.player1 is None or self.player2 is None:
            return
        if self.round_number == 0:
            self.round_number = 1
        for player in (self.player1, self.player2):
            board_order = character_ids()
            self._rng.shuffle(board_order)
            player.board_order = board_order
        self.active_player_token = self.player1.token
        self.question_asked = False
        self.countdown_started_at = None
        self.phase = GamePhase.PLAYING
        logger.info("Session %s round %s started", self.code, self.round_number)

    def _post_round_decisions_agree(self) -> bool:
        if self.player1 is None or self.player2 is None:
            return False
        first = self.post_round_decisions.get(self.player1.token)
        second = self.post_round_decisions.get(self.player2.token)
        return first is not None and first == second

    def _begin_new_round(self) -> None:
        if self.player1 is None or self.player2 is None:
            return
        if self.is_match_over:
            self.player1.round_wins = 0
            self.player2.round_wins = 0
        self.round_number += 1
        self.chat_log = []
        self.question_asked = False
        self.countdown_started_at = None
        self.active_player_token = ""
        self.player1.reset_round()
        self.player2.reset_round()
        self.round_winner_token = None
        self.end_reason = None
        self.post_round_decisions = {}
        self.is_match_over = False
        self.match_winner_token = None
        self.phase = GamePhase.CHARACTER_SELECTION

    def _cancel_post_round_timer(self) -> None:
        if self._post_round_timer is not None:
            self._post_round_timer.cancel()
            self._post_round_timer = None

    def _on_post_round_timeout(self, round_number: int) -> None:
        with self._lock:
            if self.phase != GamePhase.ROUND_END or self.round_number != round_number:
                return
            self._post_round_timer = None
            self.phase = GamePhase.GAME_END
            self._touch()
        logger.info("Session %s post-round decision timed out; ending game", self.code)
        self._notify_state_changed()
