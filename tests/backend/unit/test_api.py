import asyncio
import random
from typing import Any, Callable

import pytest

fastapi = pytest.importorskip("fastapi")
pytest.importorskip("httpx")
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from guesswho.backend.api import SESSION_GONE_CLOSE_CODE, SessionWebSocketHub, create_app
from guesswho.backend.config import BackendSettings
from guesswho.backend.models import GamePhase
from guesswho.backend.store import InMemorySessionStore


class _ManualScheduler:
    def __init__(self) -> None:
        self.callbacks: list[Callable[[], None]] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> "_ManualScheduler":
        self.callbacks.append(callback)
        return self

    def cancel(self) -> None:
        return None


class _FirstSymbolRandom:
    """Always draws the first alphabet symbol, so every new session gets code AAAA."""

    def __init__(self) -> None:
        self._shuffler = random.Random(5)

    def choice(self, seq):
        return seq[0]

    def shuffle(self, values: list) -> None:
        self._shuffler.shuffle(values)


class _RecordingWebSocket:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.sent: list[dict[str, Any]] = []
        self.closed_with: int | None = None

    async def accept(self) -> None:
        return None

    async def send_json(self, data: dict[str, Any]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code


def _settings() -> BackendSettings:
    return BackendSettings(
        host="127.0.0.1",
        port=8000,
        session_idle_timeout_minutes=120,
        cleanup_interval_seconds=0,
        post_round_timeout_seconds=60,
        log_level="INFO",
    )


def _client(scheduler: _ManualScheduler | None = None, rng: Any = None) -> TestClient:
    store = InMemorySessionStore(
        rng=rng if rng is not None else random.Random(5),
        scheduler=scheduler if scheduler is not None else _ManualScheduler(),
    )
    return TestClient(create_app(store=store, settings=_settings()))


def _start_game(client: TestClient) -> tuple[str, str, str]:
    created = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()
    code = created["code"]
    client.post(f"/api/sessions/{code}/join", json={"name": "Bob", "token": "tok-b"})
    client.post(f"/api/sessions/{code}/selection", json={"token": "tok-a", "first_id": 1, "second_id": 2})
    client.post(f"/api/sessions/{code}/selection", json={"token": "tok-b", "first_id": 3, "second_id": 4})
    return code, "tok-a", "tok-b"


def test_list_characters_returns_full_catalog() -> None:
    response = _client().get("/api/characters")

    assert response.status_code == 200
    characters = response.json()
    assert [character["id"] for character in characters] == list(range(1, 25))
    assert characters[0]["name"] == "Alex"


def test_post_sessions_generates_token_when_missing() -> None:
    response = _client().post("/api/sessions", json={"name": "Alice"})

    assert response.status_code == 200
    data = response.json()
    assert len(data["code"]) == 4
    assert data["token"]
    assert data["state"]["phase"] == "lobby"
    assert data["state"]["you"]["name"] == "Alice"
    assert data["state"]["opponent"] is None


def test_join_session_maps_results_to_status_codes() -> None:
    client = _client()
    code = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()["code"]

    missing = client.post("/api/sessions/ZZZZ/join", json={"name": "Bob", "token": "tok-b"})
    joined = client.post(f"/api/sessions/{code.lower()}/join", json={"name": "Bob", "token": "tok-b"})
    rejoined = client.post(f"/api/sessions/{code}/join", json={"name": "Bob", "token": "tok-b"})
    full = client.post(f"/api/sessions/{code}/join", json={"name": "Carl", "token": "tok-c"})

    assert missing.status_code == 404
    assert joined.status_code == 200
    assert joined.json()["result"] == "success"
    assert joined.json()["state"]["phase"] == "character_selection"
    assert rejoined.json()["result"] == "already_joined"
    assert full.status_code == 409


def test_get_session_requires_seated_token() -> None:
    client = _client()
    code = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()["code"]

    ok = client.get(f"/api/sessions/{code}", params={"token": "tok-a"})
    wrong_token = client.get(f"/api/sessions/{code}", params={"token": "nobody"})
    wrong_code = client.get("/api/sessions/ZZZZ", params={"token": "tok-a"})

    assert ok.status_code == 200
    assert ok.json()["state"]["code"] == code
    assert wrong_token.status_code == 404
    assert wrong_code.status_code == 404


def test_snapshot_hides_opponent_mystery_people_until_round_end() -> None:
    client = _client()
    code, token_a, token_b = _start_game(client)

    playing = client.get(f"/api/sessions/{code}", params={"token": token_a}).json()["state"]
    assert playing["phase"] == "playing"
    assert playing["isYourTurn"] is True
    assert playing["you"]["mysteryPersonIds"] == [1, 2]
    assert sorted(playing["you"]["boardOrder"]) == list(range(1, 25))
    assert playing["opponent"]["mysteryPersonIds"] is None

    client.post(f"/api/sessions/{code}/guess", json={"token": token_a, "first_id": 4, "second_id": 3})
    ended = client.get(f"/api/sessions/{code}", params={"token": token_b}).json()["state"]

    assert ended["phase"] == "round_end"
    assert ended["endReason"] == "correct_guess"
    assert ended["roundWinnerSlot"] == 1
    assert ended["opponent"]["mysteryPersonIds"] == [1, 2]


def test_question_answer_and_turn_flow() -> None:
    client = _client()
    code, token_a, token_b = _start_game(client)

    asked = client.post(f"/api/sessions/{code}/question", json={"token": token_a, "text": " Hat? "})
    assert asked.json()["state"]["awaitingAnswer"] is True

    answered = client.post(f"/api/sessions/{code}/answer", json={"token": token_b, "answer": "Both"})
    state = answered.json()["state"]
    assert [entry["kind"] for entry in state["chat"]] == ["question", "answer"]
    assert state["chat"][0]["text"] == "Hat?"
    assert state["countdownStartedAt"] is not None

    eliminated = client.post(f"/api/sessions/{code}/eliminate", json={"token": token_a, "character_id": 9})
    assert eliminated.json()["state"]["you"]["eliminatedIds"] == [9]

    passed = client.post(f"/api/sessions/{code}/next-turn", json={"token": token_a})
    assert passed.json()["state"]["activeSlot"] == 2
    assert passed.json()["state"]["countdownStartedAt"] is None


def test_out_of_turn_commands_are_accepted_without_effect() -> None:
    client = _client()
    code, _, token_b = _start_game(client)

    response = client.post(f"/api/sessions/{code}/question", json={"token": token_b, "text": "Hat?"})

    assert response.status_code == 200
    assert response.json()["state"]["chat"] == []


def test_commands_reject_unknown_sessions_and_strangers() -> None:
    client = _client()
    code, _, _ = _start_game(client)

    unknown = client.post("/api/sessions/ZZZZ/next-turn", json={"token": "tok-a"})
    stranger = client.post(f"/api/sessions/{code}/next-turn", json={"token": "tok-x"})

    assert unknown.status_code == 404
    assert stranger.status_code == 403


def test_post_round_decisions_reach_new_round() -> None:
    client = _client()
    code, token_a, token_b = _start_game(client)
    client.post(f"/api/sessions/{code}/guess", json={"token": token_a, "first_id": 5, "second_id": 6})

    pending = client.post(f"/api/sessions/{code}/decision", json={"token": token_a, "decision": "new_round"})
    assert pending.json()["state"]["postRoundDecisions"] == {"1": "new_round"}

    agreed = client.post(f"/api/sessions/{code}/decision", json={"token": token_b, "decision": "new_round"})
    state = agreed.json()["state"]

    assert state["phase"] == "character_selection"
    assert state["roundNumber"] == 2
    assert state["chat"] == []
    assert state["you"]["roundWins"] == 1


def test_invalid_decision_value_is_rejected() -> None:
    client = _client()
    code, token_a, _ = _start_game(client)

    response = client.post(f"/api/sessions/{code}/decision", json={"token": token_a, "decision": "maybe"})

    assert response.status_code == 422


def test_websocket_sends_initial_state_after_connect() -> None:
    client = _client()
    created = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()

    with client.websocket_connect(f"/ws/sessions/{created['code']}?token=tok-a") as websocket:
        message = websocket.receive_json()

    assert message["type"] == "state.full"
    assert message["state"]["code"] == created["code"]


def test_websocket_rejects_invalid_token() -> None:
    client = _client()
    created = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()

    with pytest.raises(WebSocketDisconnect) as rejected:
        with client.websocket_connect(f"/ws/sessions/{created['code']}?token=invalid"):
            pass

    assert rejected.value.code == 1008


def test_websocket_pushes_per_player_state_on_change() -> None:
    scheduler = _ManualScheduler()
    client = _client(scheduler=scheduler)

    with client:
        created = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()
        code = created["code"]
        client.post(f"/api/sessions/{code}/join", json={"name": "Bob", "token": "tok-b"})

        with client.websocket_connect(f"/ws/sessions/{code}?token=tok-a") as ws_a:
            with client.websocket_connect(f"/ws/sessions/{code}?token=tok-b") as ws_b:
                ws_a.receive_json()
                ws_b.receive_json()

                client.post(f"/api/sessions/{code}/selection", json={"token": "tok-a", "first_id": 1, "second_id": 2})

                message_a = ws_a.receive_json()
                message_b = ws_b.receive_json()

    assert message_a["state"]["you"]["mysteryPersonIds"] == [1, 2]
    assert message_a["state"]["opponent"]["hasSelected"] is False
    assert message_b["state"]["you"]["mysteryPersonIds"] == []
    assert message_b["state"]["opponent"]["hasSelected"] is True
    assert message_b["state"]["opponent"]["mysteryPersonIds"] is None


def test_reused_code_gets_fresh_subscription_and_old_sockets_are_closed() -> None:
    client = _client(rng=_FirstSymbolRandom())
    store = client.app.state.session_store

    with client:
        first = client.post("/api/sessions", json={"name": "Alice", "token": "tok-a"}).json()
        assert first["code"] == "AAAA"

        with client.websocket_connect("/ws/sessions/AAAA?token=tok-a") as old_ws:
            old_ws.receive_json()
            store.get_session("AAAA").phase = GamePhase.GAME_END
            assert store.remove_stale_sessions() == 1

            with pytest.raises(WebSocketDisconnect) as closed:
                old_ws.receive_json()

        second = client.post("/api/sessions", json={"name": "Carol", "token": "tok-c"}).json()
        assert second["code"] == "AAAA"

        with client.websocket_connect("/ws/sessions/AAAA?token=tok-c") as new_ws:
            initial = new_ws.receive_json()
            client.post("/api/sessions/AAAA/join", json={"name": "Dan", "token": "tok-d"})
            pushed = new_ws.receive_json()

    assert closed.value.code == SESSION_GONE_CLOSE_CODE
    assert initial["state"]["you"]["name"] == "Carol"
    assert pushed["state"]["phase"] == "character_selection"
    assert pushed["state"]["opponent"]["name"] == "Dan"


def test_broadcast_drops_socket_that_disconnects_mid_send() -> None:
    store = InMemorySessionStore(rng=random.Random(5), scheduler=_ManualScheduler())
    session = store.create_session("tok-a", "Alice")
    hub = SessionWebSocketHub(store)
    healthy = _RecordingWebSocket()
    gone = _RecordingWebSocket(fail_with=WebSocketDisconnect(code=1006))

    async def scenario() -> None:
        await hub.connect(session=session, websocket=healthy, token="tok-a")
        await hub.connect(session=session, websocket=gone, token="tok-a")
        await hub.broadcast_state(session)

    asyncio.run(scenario())

    assert hub.connection_count(session) == 1
    assert [message["type"] for message in healthy.sent] == ["state.full"]


def test_broadcast_tasks_are_tracked_until_finished() -> None:
    store = InMemorySessionStore(rng=random.Random(5), scheduler=_ManualScheduler())
    session = store.create_session("tok-a", "Alice")
    hub = SessionWebSocketHub(store)
    websocket = _RecordingWebSocket()
    in_flight: list[int] = []

    async def scenario() -> None:
        await hub.connect(session=session, websocket=websocket, token="tok-a")
        store.join_session(session.code, "tok-b", "Bob")
        await asyncio.sleep(0)
        in_flight.append(len(hub._tasks))
        await asyncio.gather(*hub._tasks)
        in_flight.append(len(hub._tasks))

    asyncio.run(scenario())

    assert in_flight == [1, 0]
    assert websocket.sent[0]["state"]["opponent"]["name"] == "Bob"


def test_hub_closes_sockets_of_removed_session() -> None:
    store = InMemorySessionStore(rng=random.Random(5), scheduler=_ManualScheduler())
    session = store.create_session("tok-a", "Alice")
    hub = SessionWebSocketHub(store)
    websocket = _RecordingWebSocket()

    async def scenario() -> None:
        await hub.connect(session=session, websocket=websocket, token="tok-a")
        store.remove_session(session.code)
        await asyncio.sleep(0)
        await asyncio.gather(*hub._tasks)

    asyncio.run(scenario())

    assert websocket.closed_with == SESSION_GONE_CLOSE_CODE
    assert websocket.sent == []
    assert hub.connection_count(session) == 0
    assert session._listeners == []
