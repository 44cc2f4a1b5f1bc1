"""Registry of live game sessions keyed by a short join code."""

from __future__ import annotations

from datetime import timedelta
import logging
import random
from typing import Protocol

from guesswho.backend.engine import POST_ROUND_TIMEOUT_SECONDS, GameSession
from guesswho.backend.models import JoinResult, PostRoundDecision
from guesswho.backend.security import normalize_code, sanitize_player_name
from guesswho.backend.timing import Clock, Scheduler, ThreadingScheduler, utc_now

logger = logging.getLogger(__name__)

# Uppercase letters and digits without the look-alikes O, 0, I and 1.
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 4
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


class SessionStore(Protocol):
    def create_session(self, token: str, name: str) -> GameSession:
        """Create a session with a fresh code and seat the creator as player 1."""

    def join_session(self, code: str, token: str, name: str) -> tuple[JoinResult, GameSession | None]:
        """Seat a player; the session is returned only for SUCCESS and ALREADY_JOINED."""

    def get_session(self, code: str) -> GameSession | None:
        """Return the live session for a code, ignoring case and surrounding whitespace."""

    def remove_session(self, code: str) -> None:
        """Forget a session; unknown codes are ignored."""

    def remove_stale_sessions(self) -> int:
        """Drop ended or idle sessions and return how many were removed."""

    def select_mystery_people(self, code: str, token: str, first_id: int, second_id: int) -> None:
        """Forward a mystery pair selection; unknown codes are ignored."""

    def start_next_turn(self, code: str, token: str) -> None:
        """Forward a turn hand-over; unknown codes are ignored."""

    def ask_question(self, code: str, token: str, text: str) -> None:
        """Forward a question; unknown codes are ignored."""

    def answer_question(self, code: str, token: str, answer: str) -> None:
        """Forward an answer; unknown codes are ignored."""

    def eliminate_character(self, code: str, token: str, character_id: int) -> None:
        """Forward a board elimination; unknown codes are ignored."""

    def make_guess(self, code: str, token: str, first_id: int, second_id: int) -> None:
        """Forward a final guess; unknown codes are ignored."""

    def make_post_round_decision(self, code: str, token: str, decision: PostRoundDecision) -> None:
        """Forward a post-round decision; unknown codes are ignored."""


class InMemorySessionStore:
    """Process-local registry; sessions are lost on restart.

    The index is a plain dict mutated only through single atomic operations
    (setdefault, pop), so creating, looking up and sweeping sessions never
    takes a registry-wide lock.
    """

    def __init__(
        self,
        *,
        clock: Clock = utc_now,
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
        idle_timeout: timedelta = SESSION_IDLE_TIMEOUT,
        post_round_timeout_seconds: float = POST_ROUND_TIMEOUT_SECONDS,
    ) -> None:
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()
        self._scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self.idle_timeout = idle_timeout
        self._post_round_timeout_seconds = post_round_timeout_seconds
        self._sessions: dict[str, GameSession] = {}

    def create_session(self, token: str, name: str) -> GameSession:
        while True:
            code = self._generate_code()
            session = GameSession(
                code,
                clock=self._clock,
                rng=self._rng,
                scheduler=self._scheduler,
                post_round_timeout_seconds=self._post_round_timeout_seconds,
            )
            if self._sessions.setdefault(code, session) is session:
                break
            logger.debug("Session code %s already taken; retrying", code)

        session.add_player(token, sanitize_player_name(name))
        logger.info("Created session %s", code)
        return session

    def join_session(self, code: str, token: str, name: str) -> tuple[JoinResult, GameSession | None]:
        session = self.get_session(code)
        if session is None:
            return JoinResult.NOT_FOUND, None

        result = session.add_player(token, sanitize_player_name(name))
        if result in (JoinResult.SUCCESS, JoinResult.ALREADY_JOINED):
            return result, session
        return result, None

    def get_session(self, code: str) -> GameSession | None:
        return self._sessions.get(normalize_code(code))

    def session_count(self) -> int:
        return len(self._sessions)

    def select_mystery_people(self, code: str, token: str, first_id: int, second_id: int) -> None:
        session = self.get_session(code)
        if session is not None:
            session.select_mystery_people(token, first_id, second_id)

    def start_next_turn(self, code: str, token: str) -> None:
        session = self.get_session(code)
        if session is not None:
            session.start_next_turn(token)

    def ask_question(self, code: str, token: str, text: str) -> None:
        session = self.get_session(code)
        if session is not None:
            session.ask_question(token, text)

    def answer_question(self, code: str, token: str, answer: str) -> None:
        session = self.get_session(code)
        if session is not None:
            session.answer_question(token, answer)

    def eliminate_character(self, code: str, token: str, character_id: int) -> None:
        session = self.get_session(code)
        if session is not None:
            session.eliminate_character(token, character_id)

    def make_guess(self, code: str, token: str, first_id: int, second_id: int) -> None:
        session = self.get_session(code)
        if session is not None:
            session.make_guess(token, first_id, second_id)

    def make_post_round_decision(self, code: str, token: str, decision: PostRoundDecision) -> None:
        session = self.get_session(code)
        if session is not None:
            session.make_post_round_decision(token, decision)

    def remove_session(self, code: str) -> None:
        session = self._sessions.pop(normalize_code(code), None)
        if session is not None:
            session.close()

    def remove_stale_sessions(self) -> int:
        now = self._clock()
        removed = 0
        # Copying the items in one call relies on the CPython GIL to keep it atomic.
        for code, session in list(self._sessions.items()):
            if not session.is_reclaimable(now, self.idle_timeout):
                continue
            if self._sessions.get(code) is not session:
                continue
            if self._sessions.pop(code, None) is session:
                session.close()
                removed += 1
                logger.debug("Removed stale session %s (phase=%s)", code, session.phase.value)
        return removed

    def _generate_code(self) -> str:
        return "".join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
