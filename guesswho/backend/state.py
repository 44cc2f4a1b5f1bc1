"""State builders for per-player session snapshots."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from guesswho.backend.engine import ANSWER_COUNTDOWN_SECONDS, ROUNDS_TO_WIN, GameSession
from guesswho.backend.models import GamePhase, PlayerState

_REVEAL_PHASES = {GamePhase.ROUND_END, GamePhase.GAME_END}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _slot_of(session: GameSession, token: str | None) -> int | None:
    if token is None:
        return None
    player = session.get_player(token)
    return player.slot if player is not None else None


def _own_view(player: PlayerState) -> dict[str, Any]:
    return {
        "name": player.name,
        "slot": player.slot,
        "roundWins": player.round_wins,
        "hasSelected": player.has_selected_mystery_people,
        "mysteryPersonIds": sorted(player.mystery_person_ids),
        "eliminatedIds": sorted(player.eliminated_ids),
        "boardOrder": list(player.board_order),
    }


def _opponent_view(player: PlayerState, reveal: bool) -> dict[str, Any]:
    return {
        "name": player.name,
        "slot": player.slot,
        "roundWins": player.round_wins,
        "hasSelected": player.has_selected_mystery_people,
        "eliminatedCount": len(player.eliminated_ids),
        "mysteryPersonIds": sorted(player.mystery_person_ids) if reveal else None,
    }


def build_session_snapshot(session: GameSession, viewer_token: str) -> dict[str, Any]:
    """Return the JSON-ready view of a session as seen by one player.

    The opponent's mystery people stay hidden until the round has been resolved.
    """
    you = session.get_player(viewer_token)
    opponent = session.get_opponent(viewer_token)
    reveal = session.phase in _REVEAL_PHASES

    decisions: dict[str, str] = {}
    for token, decision in session.post_round_decisions.items():
        slot = _slot_of(session, token)
        if slot is not None:
            decisions[str(slot)] = decision.value

    return {
        "code": session.code,
        "phase": session.phase.value,
        "roundNumber": session.round_number,
        "roundsToWin": ROUNDS_TO_WIN,
        "activeSlot": _slot_of(session, session.active_player_token or None),
        "isYourTurn": session.is_active_player(viewer_token),
        "questionAsked": session.question_asked,
        "awaitingAnswer": session.awaiting_answer,
        "chat": [
            {"sender": message.sender_name, "text": message.text, "kind": message.kind.value}
            for message in session.chat_log
        ],
        "countdownSeconds": ANSWER_COUNTDOWN_SECONDS,
        "countdownStartedAt": _iso(session.countdown_started_at),
        "countdownEndsAt": _iso(session.countdown_ends_at),
        "endReason": session.end_reason.value if session.end_reason is not None else None,
        "roundWinnerSlot": _slot_of(session, session.round_winner_token),
        "isMatchOver": session.is_match_over,
        "matchWinnerSlot": _slot_of(session, session.match_winner_token),
        "postRoundDecisions": decisions,
        "you": _own_view(you) if you is not None else None,
        "opponent": _opponent_view(opponent, reveal) if opponent is not None else None,
    }
