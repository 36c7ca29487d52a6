import time
import uuid
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Response

from infinite_heroes.agents.casting.villain import VillainGenerator
from infinite_heroes.agents.narrative.painter import PanelPainter
from infinite_heroes.agents.narrative.writer import NarrativeWriter
from infinite_heroes.comic.cast import set_cast
from infinite_heroes.comic.context import StaticStoryContext
from infinite_heroes.core.config import settings
from infinite_heroes.core.errors import GenerationError, StateError, ValidationError
from infinite_heroes.core.graph.session import ComicSessionController
from infinite_heroes.core.graph.workflow import GenerationDriver
from infinite_heroes.core.logger import get_logger
from infinite_heroes.schemas.api import (
    ComicSessionRead,
    RegenerateRequest,
    StartComicRequest,
    VillainRead,
    VillainRequest,
)

logger = get_logger(__name__)

router = APIRouter()

# In-memory sessions: a comic lives as long as the user stays in the creator
comic_sessions: Dict[str, ComicSessionController] = {}
# Monotonic time of the last request that touched each session
session_last_seen: Dict[str, float] = {}


def discard_session(session_id: str) -> None:
    controller = comic_sessions.pop(session_id, None)
    session_last_seen.pop(session_id, None)
    if controller is not None:
        controller.stop()


def prune_idle_sessions() -> None:
    """Drop comics that stopped running and were not polled for SESSION_IDLE_SECONDS."""
    cutoff = time.monotonic() - settings.SESSION_IDLE_SECONDS
    for session_id in list(comic_sessions):
        if comic_sessions[session_id].running:
            continue
        if session_last_seen.get(session_id, 0.0) <= cutoff:
            discard_session(session_id)
            logger.info(f"Comic session {session_id} evicted after inactivity")


# --- Dependencies (overridden in tests) ---

def get_writer() -> NarrativeWriter:
    return NarrativeWriter()


def get_painter() -> PanelPainter:
    return PanelPainter()


def get_villain_generator(painter: PanelPainter = Depends(get_painter)) -> VillainGenerator:
    return VillainGenerator(painter=painter)


def get_controller(session_id: str) -> ComicSessionController:
    prune_idle_sessions()
    controller = comic_sessions.get(session_id)
    if controller is None or controller.session is None:
        raise HTTPException(status_code=404, detail="Comic session not found")
    session_last_seen[session_id] = time.monotonic()
    return controller


def _read(session_id: str, controller: ComicSessionController) -> ComicSessionRead:
    session = controller.session
    current = session.current_page
    return ComicSessionRead(
        session_id=session_id,
        epoch=session.epoch,
        genre=session.genre,
        running=session.running,
        is_complete=session.is_complete,
        current_page_index=current.page_index if current and session.running else None,
        failed_page_index=session.failed_page_index,
        last_error=str(session.last_error) if session.last_error else None,
        pages=list(session.pages),
    )


# --- Routes ---

@router.post("/sessions", response_model=ComicSessionRead, status_code=201)
async def start_comic(
    req: StartComicRequest,
    writer: NarrativeWriter = Depends(get_writer),
    painter: PanelPainter = Depends(get_painter),
):
    try:
        cast = set_cast(req.hero.model_dump(), req.costar.model_dump(), req.villain.model_dump())
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    driver = GenerationDriver(
        writer=writer,
        painter=painter,
        story_context=StaticStoryContext(req.premise, req.scenes),
    )
    controller = ComicSessionController(driver)
    try:
        controller.start(req.genre, cast)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    prune_idle_sessions()
    session_id = uuid.uuid4().hex
    comic_sessions[session_id] = controller
    session_last_seen[session_id] = time.monotonic()
    logger.info(f"Comic session {session_id} started ({req.genre})")
    return _read(session_id, controller)


@router.get("/sessions/{session_id}", response_model=ComicSessionRead)
async def get_comic(session_id: str, controller: ComicSessionController = Depends(get_controller)):
    return _read(session_id, controller)


@router.post("/sessions/{session_id}/stop", response_model=ComicSessionRead)
async def stop_comic(session_id: str, controller: ComicSessionController = Depends(get_controller)):
    controller.stop()
    return _read(session_id, controller)


@router.post("/sessions/{session_id}/regenerate", response_model=ComicSessionRead)
async def regenerate_page(
    session_id: str,
    req: RegenerateRequest,
    controller: ComicSessionController = Depends(get_controller),
):
    session = controller.session
    try:
        controller.regenerate(req.page_index, req.genre or session.genre, session.cast)
    except StateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _read(session_id, controller)


@router.delete("/sessions/{session_id}", status_code=204)
async def discard_comic(session_id: str, controller: ComicSessionController = Depends(get_controller)):
    discard_session(session_id)
    return Response(status_code=204)


@router.post("/villain", response_model=VillainRead)
async def create_villain(req: VillainRequest, generator: VillainGenerator = Depends(get_villain_generator)):
    try:
        villain = await generator.generate(req.hero_description, req.genre)
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return VillainRead(villain=villain)
