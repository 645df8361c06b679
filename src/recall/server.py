import logging
import random
import time
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from recall.application.session import StudySession
from recall.consts import VERSION
from recall.domain.deck_config import DeckConfig
from recall.domain.errors import CardNotFoundError, CardStoreError, ContractViolation
from recall.domain.models import Card
from recall.domain.ports import CardStore, Clock

logger = logging.getLogger("recall.server")


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class CardResponse(BaseModel):
    id: str
    deck_id: str
    state: str
    queue_status: str
    due: int
    interval_days: int
    ease_permille: int
    steps_remaining: int
    reps: int
    lapses: int
    note_id: str | None = None

    @classmethod
    def from_card(cls, card: Card | None) -> "CardResponse | None":
        if card is None:
            return None
        return cls(**card.to_dict())


class StatsResponse(BaseModel):
    new_remaining: int
    learning_remaining: int
    review_remaining: int
    learning_pending: int
    answered: int
    time_spent_ms: int
    undo_depth: int
    answers_by_grade: dict[str, int]


class SessionResponse(BaseModel):
    deck_id: str
    card: CardResponse | None
    finished: bool
    stats: StatsResponse


class StartRequest(BaseModel):
    # Deck options for this session; the stored deck config (or defaults) if None.
    config: DeckConfig | None = None
    seed: int | None = None


class AnswerRequest(BaseModel):
    grade: int | str
    elapsed_ms: int = Field(default=0, ge=0)


class UndoResponse(SessionResponse):
    undone: bool


def create_app(store: CardStore | None = None, clock: Clock | None = None) -> FastAPI:
    """
    Build the API app. Without an explicit store/clock the resolved
    AppConfig decides which adapters to use at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        if app.state.store is None or app.state.clock is None:
            from recall.application.config import resolve_config
            from recall.application.factory import get_card_store, get_clock

            config = resolve_config()
            app.state.store = app.state.store or get_card_store(config)
            app.state.clock = app.state.clock or get_clock(config)
            app.state.undo_limit = config.undo_limit
        logger.info(f"recall server v{VERSION} starting up...")
        yield
        # Shutdown
        app.state.sessions.clear()
        logger.info("recall server shutting down...")

    app = FastAPI(
        title="recall server",
        description="Spaced-repetition study sessions over HTTP.",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.clock = clock
    app.state.undo_limit = None
    app.state.sessions = {}
    app.state.start_time = time.time()

    @app.exception_handler(CardNotFoundError)
    async def card_not_found(request: Request, exc: CardNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(CardStoreError)
    async def store_failed(request: Request, exc: CardStoreError):
        logger.error(f"Store failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=503, content={"detail": str(exc), "retryable": True}
        )

    @app.exception_handler(ContractViolation)
    async def bad_request(request: Request, exc: ContractViolation):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    def get_session(deck_id: str) -> StudySession:
        session = app.state.sessions.get(deck_id)
        if session is None:
            raise HTTPException(status_code=404, detail=f"No session for deck {deck_id}")
        return session

    async def session_response(deck_id: str, session: StudySession) -> dict:
        card = await session.current()
        return {
            "deck_id": deck_id,
            "card": CardResponse.from_card(card),
            "finished": card is None,
            "stats": StatsResponse(**asdict(session.stats())),
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Simple health check to verify server is reachable.
        """
        return HealthResponse(
            status="ok", version=VERSION, uptime_seconds=time.time() - app.state.start_time
        )

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.post("/sessions/{deck_id}", response_model=SessionResponse)
    async def start_session(deck_id: str, req: StartRequest | None = None):
        """
        Start (or restart) the session for a deck. One live session per deck.
        """
        req = req or StartRequest()
        store: CardStore = app.state.store
        config = req.config or await store.get_deck_config(deck_id) or DeckConfig()
        rng = random.Random(req.seed) if req.seed is not None else None

        session = StudySession(
            store, app.state.clock, undo_limit=app.state.undo_limit, rng=rng
        )
        await session.start(deck_id, config)
        app.state.sessions[deck_id] = session
        return await session_response(deck_id, session)

    @app.get("/sessions/{deck_id}/current", response_model=SessionResponse)
    async def current_card(deck_id: str):
        session = get_session(deck_id)
        return await session_response(deck_id, session)

    @app.post("/sessions/{deck_id}/answer", response_model=SessionResponse)
    async def submit_grade(deck_id: str, req: AnswerRequest):
        session = get_session(deck_id)
        if await session.current() is None:
            raise HTTPException(status_code=409, detail="Session complete; nothing to answer")
        await session.answer(req.grade, req.elapsed_ms)
        return await session_response(deck_id, session)

    @app.post("/sessions/{deck_id}/undo", response_model=UndoResponse)
    async def undo_last_grade(deck_id: str):
        session = get_session(deck_id)
        undone = await session.undo()
        return {**(await session_response(deck_id, session)), "undone": undone}

    @app.get("/sessions/{deck_id}/stats", response_model=StatsResponse)
    async def session_stats(deck_id: str):
        return StatsResponse(**asdict(get_session(deck_id).stats()))

    @app.delete("/sessions/{deck_id}")
    async def abandon_session(deck_id: str):
        session = get_session(deck_id)
        session.abandon()
        del app.state.sessions[deck_id]
        return {"abandoned": deck_id}

    return app


app = create_app()
