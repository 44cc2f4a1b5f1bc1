"""FastAPI endpoints for session lifecycle, game commands and websocket sync."""

from __future__ import annotations

import asyncio
import contextlib
from datetime import timedelta
import functools
import logging
from typing import Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from .characters import CHARACTERS
from .cleanup import run_cleanup_loop
from .config import BackendSettings, load_settings
from .engine import GameSession
from .models import JoinResult, PostRoundDecision
from .security import generate_token
from .state import build_session_snapshot
from .store import InMemorySessionStore, SessionStore

logger = logging.getLogger(__name__)

SESSION_GONE_CLOSE_CODE = 1001


class PlayerEnvelope(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    token: str | None = Field(default=None, min_length=1, max_length=200)


class CreateSessionResponse(BaseModel):
    code: str
    token: str
    state: dict[str, Any]


class JoinSessionResponse(BaseModel):
    result: JoinResult
    code: str
    token: str
    state: dict[str, Any]


class SessionStateResponse(BaseModel):
    state: dict[str, Any]


class CharacterResponse(BaseModel):
    id: int
    name: str
    hair_color: str
    eye_color: str
    glasses: bool
    hat: bool
    facial_hair: bool
    hair_length: str
    bald: bool
    rosy_cheeks: bool
    big_nose: bool


class TokenEnvelope(BaseModel):
    token: str = Field(min_length=1)


class PairEnvelope(TokenEnvelope):
    first_id: int
    second_id: int


class QuestionEnvelope(TokenEnvelope):
    text: str = Field(min_length=1, max_length=300)


class AnswerEnvelope(TokenEnvelope):
    answer: str = Field(min_length=1, max_length=50)


class EliminateEnvelope(TokenEnvelope):
    character_id: int


class DecisionEnvelope(TokenEnvelope):
    decision: PostRoundDecision


class SessionWebSocketHub:
    """Pushes a fresh per-player snapshot to every socket whenever a session changes.

    Sockets and subscriptions are tracked per session object, not per code,
    because a code freed by the registry may be handed to a new session.
    Session listeners may fire on timer threads, so broadcasts are always
    marshalled onto the event loop that owns the sockets.
    """

    def __init__(self, store: SessionStore) -> None:
        self._store = store
        self._connections: dict[GameSession, dict[WebSocket, str]] = {}
        self._subscriptions: dict[GameSession, Callable[[], None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    def connection_count(self, session: GameSession) -> int:
        return len(self._connections.get(session, {}))

    async def connect(self, session: GameSession, websocket: WebSocket, token: str) -> bool:
        await websocket.accept()
        self._loop = asyncio.get_running_loop()
        self._connections.setdefault(session, {})[websocket] = token
        if session not in self._subscriptions:
            self._subscriptions[session] = session.subscribe(
                functools.partial(self._on_session_changed, session)
            )
        if not self._is_live(session):
            await self.close_session(session)
            return False
        logger.debug("Socket joined session %s (%s open)", session.code, self.connection_count(session))
        return True

    def disconnect(self, session: GameSession, websocket: WebSocket) -> None:
        connections = self._connections.get(session)
        if connections is None:
            return
        connections.pop(websocket, None)
        if not connections:
            self._connections.pop(session, None)
            unsubscribe = self._subscriptions.pop(session, None)
            if unsubscribe is not None:
                unsubscribe()

    async def close_session(self, session: GameSession) -> None:
        connections = self._connections.pop(session, {})
        unsubscribe = self._subscriptions.pop(session, None)
        if unsubscribe is not None:
            unsubscribe()
        for websocket in list(connections):
            with contextlib.suppress(RuntimeError, WebSocketDisconnect):
                await websocket.close(code=SESSION_GONE_CLOSE_CODE)
        if connections:
            logger.info("Closed %s socket(s) for removed session %s", len(connections), session.code)

    async def send_state(self, websocket: WebSocket, session: GameSession, token: str) -> None:
        await websocket.send_json({"type": "state.full", "state": build_session_snapshot(session, token)})

    async def broadcast_state(self, session: GameSession) -> None:
        if not self._is_live(session):
            await self.close_session(session)
            return
        stale_connections: list[WebSocket] = []
        for websocket, token in list(self._connections.get(session, {}).items()):
            try:
                await self.send_state(websocket, session, token)
            except (RuntimeError, WebSocketDisconnect):
                stale_connections.append(websocket)
        for websocket in stale_connections:
            self.disconnect(session=session, websocket=websocket)

    def _is_live(self, session: GameSession) -> bool:
        return not session.closed and self._store.get_session(session.code) is session

    def _on_session_changed(self, session: GameSession) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self._schedule_broadcast, session)

    def _schedule_broadcast(self, session: GameSession) -> None:
        task = asyncio.ensure_future(self.broadcast_state(session))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _default_store(settings: BackendSettings) -> SessionStore:
    return InMemorySessionStore(
        idle_timeout=timedelta(minutes=settings.session_idle_timeout_minutes),
        post_round_timeout_seconds=settings.post_round_timeout_seconds,
    )


def create_app(store: SessionStore | None = None, settings: BackendSettings | None = None) -> FastAPI:
    backend_settings = settings if settings is not None else load_settings()
    session_store = store if store is not None else _default_store(backend_settings)

    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        cleanup_task: asyncio.Task[None] | None = None
        if backend_settings.cleanup_interval_seconds > 0:
            cleanup_task = asyncio.create_task(
                run_cleanup_loop(session_store, backend_settings.cleanup_interval_seconds)
            )
        try:
            yield
        finally:
            if cleanup_task is not None:
                cleanup_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await cleanup_task

    app = FastAPI(title="Guess Who API", version="1.0.0", lifespan=lifespan)
    websocket_hub = SessionWebSocketHub(store=session_store)
    app.state.websocket_hub = websocket_hub
    app.state.session_store = session_store

    def get_store() -> SessionStore:
        return session_store

    def require_session(code: str, local_store: SessionStore) -> GameSession:
        session = local_store.get_session(code)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def require_player(code: str, token: str, local_store: SessionStore) -> GameSession:
        session = require_session(code, local_store)
        if session.get_player(token) is None:
            raise HTTPException(status_code=403, detail="Not a player in this session")
        return session

    def state_response(session: GameSession, token: str) -> SessionStateResponse:
        return SessionStateResponse(state=build_session_snapshot(session, token))

    @app.get("/api/characters", response_model=list[CharacterResponse])
    def list_characters() -> list[CharacterResponse]:
        return [
            CharacterResponse(
                id=character.id,
                name=character.name,
                hair_color=character.hair_color.value,
                eye_color=character.eye_color.value,
                glasses=character.glasses,
                hat=character.hat,
                facial_hair=character.facial_hair,
                hair_length=character.hair_length.value,
                bald=character.bald,
                rosy_cheeks=character.rosy_cheeks,
                big_nose=character.big_nose,
            )
            for character in CHARACTERS
        ]

    @app.post("/api/sessions", response_model=CreateSessionResponse)
    async def create_session(
        payload: PlayerEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> CreateSessionResponse:
        token = payload.token or generate_token()
        session = local_store.create_session(token=token, name=payload.name)
        return CreateSessionResponse(
            code=session.code,
            token=token,
            state=build_session_snapshot(session, token),
        )

    @app.post("/api/sessions/{code}/join", response_model=JoinSessionResponse)
    async def join_session(
        code: str,
        payload: PlayerEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> JoinSessionResponse:
        token = payload.token or generate_token()
        result, session = local_store.join_session(code=code, token=token, name=payload.name)
        if result == JoinResult.NOT_FOUND:
            raise HTTPException(status_code=404, detail="Session not found")
        if result == JoinResult.FULL or session is None:
            raise HTTPException(status_code=409, detail="Session is full")
        return JoinSessionResponse(
            result=result,
            code=session.code,
            token=token,
            state=build_session_snapshot(session, token),
        )

    @app.get("/api/sessions/{code}", response_model=SessionStateResponse)
    def get_session(
        code: str,
        token: str = Query(min_length=1),
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_session(code, local_store)
        if session.get_player(token) is None:
            raise HTTPException(status_code=404, detail="Session not found or token invalid")
        return state_response(session, token)

    @app.post("/api/sessions/{code}/selection", response_model=SessionStateResponse)
    async def post_selection(
        code: str,
        payload: PairEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.select_mystery_people(code, payload.token, payload.first_id, payload.second_id)
        return state_response(session, payload.token)

    @app.post("/api/sessions/{code}/next-turn", response_model=SessionStateResponse)
    async def post_next_turn(
        code: str,
        payload: TokenEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.start_next_turn(code, payload.token)
        return state_response(session, payload.token)

    @app.post("/api/sessions/{code}/question", response_model=SessionStateResponse)
    async def post_question(
        code: str,
        payload: QuestionEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.ask_question(code, payload.token, payload.text)
        return state_response(session, payload.token)

    @app.post("/api/sessions/{code}/answer", response_model=SessionStateResponse)
    async def post_answer(
        code: str,
        payload: AnswerEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.answer_question(code, payload.token, payload.answer)
        return state_response(session, payload.token)

    @app.post("/api/sessions/{code}/eliminate", response_model=SessionStateResponse)
    async def post_eliminate(
        code: str,
        payload: EliminateEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.eliminate_character(code, payload.token, payload.character_id)
        return state_response(session, payload.token)

    @app.post("/api/sessions/{code}/guess", response_model=SessionStateResponse)
    async def post_guess(
        code: str,
        payload: PairEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.make_guess(code, payload.token, payload.first_id, payload.second_id)
        return state_response(session, payload.token)

    @app.post("/api/sessions/{code}/decision", response_model=SessionStateResponse)
    async def post_decision(
        code: str,
        payload: DecisionEnvelope,
        local_store: SessionStore = Depends(get_store),
    ) -> SessionStateResponse:
        session = require_player(code, payload.token, local_store)
        local_store.make_post_round_decision(code, payload.token, payload.decision)
        return state_response(session, payload.token)

    @app.websocket("/ws/sessions/{code}")
    async def session_ws(
        websocket: WebSocket,
        code: str,
        local_store: SessionStore = Depends(get_store),
    ) -> None:
        token = websocket.query_params.get("token")
        if token is None or token == "":
            await websocket.close(code=1008)
            return
        session = local_store.get_session(code)
        if session is None or session.get_player(token) is None:
            await websocket.close(code=1008)
            return

        if not await websocket_hub.connect(session=session, websocket=websocket, token=token):
            return
        await websocket_hub.send_state(websocket=websocket, session=session, token=token)

        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            websocket_hub.disconnect(session=session, websocket=websocket)

    return app


app = create_app()
