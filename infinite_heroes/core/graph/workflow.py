import logging
from typing import Optional, Protocol

from langgraph.graph import StateGraph, END

from infinite_heroes.comic.context import StoryContextProvider, build_context, build_history, format_story_context
from infinite_heroes.core.errors import GenerationError
from infinite_heroes.core.graph.state import PageLoopState
from infinite_heroes.core.logger import get_logger, log_comic_event, log_error
from infinite_heroes.schemas.comic import (
    Beat,
    GenerationSession,
    ImageRequest,
    NarrativeRequest,
    PageKind,
    PageStatus,
    back_cover_page,
    story_page,
)

logger = get_logger(__name__)

# Supersteps per page: select, write, select, paint, advance (+1 slack)
STEPS_PER_PAGE = 6


class NarrativeGenerator(Protocol):
    async def write_beat(self, request: NarrativeRequest) -> Beat:
        ...


class ImageGenerator(Protocol):
    async def paint_panel(self, request: ImageRequest) -> str:
        ...


class GenerationDriver:
    """
    Advances the current session one page at a time.

    Each run is bound to the epoch it was scheduled with. Whenever an await
    resolves, the result is applied only if that epoch is still the session's
    current one; otherwise the run ends without touching the pages.
    """

    def __init__(self, writer: NarrativeGenerator, painter: ImageGenerator,
                 story_context: StoryContextProvider):
        self.writer = writer
        self.painter = painter
        self.story_context = story_context
        self.session: Optional[GenerationSession] = None
        self.graph = build_page_graph(self)

    def is_current(self, epoch: int) -> bool:
        return self.session is not None and self.session.epoch == epoch

    async def run(self, epoch: int) -> Optional[str]:
        if not self.is_current(epoch):
            return "stale"
        recursion_limit = (self.session.page_limit + 2) * STEPS_PER_PAGE
        result = await self.graph.ainvoke(
            {"epoch": epoch, "position": None, "next_step": None, "outcome": None},
            config={"recursion_limit": recursion_limit},
        )
        outcome = result.get("outcome")
        log_comic_event(epoch, None, "run ended", outcome or "")
        return outcome

    # --- NODES ---

    async def select_page(self, state: PageLoopState) -> dict:
        """
        Picks the first page that is not ready yet, or closes the book.
        """
        epoch = state["epoch"]
        if not self.is_current(epoch):
            return {"next_step": None, "outcome": "stale"}

        session = self.session
        if not session.running:
            log_comic_event(epoch, None, "stopped")
            return {"next_step": None, "outcome": "stopped"}

        for position, page in enumerate(session.pages):
            if page.kind == PageKind.BACK_COVER or page.is_ready:
                continue
            if page.kind == PageKind.COVER:
                step = "restore_cover"
            elif page.status == PageStatus.NARRATIVE_READY and page.beat is not None:
                step = "paint_panel"
            else:
                step = "write_beat"
            return {"position": position, "next_step": step, "outcome": None}

        session.running = False
        tail = session.pages[-1] if session.pages else None
        if tail is not None and tail.kind == PageKind.STORY and tail.page_index == session.page_limit:
            session.pages.append(back_cover_page(tail.page_index + 1))
            log_comic_event(epoch, tail.page_index + 1, "back cover added")
            return {"position": None, "next_step": None, "outcome": "finished"}

        logger.warning(f"[Epoch:{epoch}] no page left to generate before the page limit ({session.page_limit})")
        return {"position": None, "next_step": None, "outcome": "exhausted"}

    async def write_beat(self, state: PageLoopState) -> dict:
        epoch, position = state["epoch"], state["position"]
        if not self.is_current(epoch):
            return {"next_step": None, "outcome": "stale"}
        session = self.session
        page = session.pages[position]

        snapshot = self.story_context.snapshot()
        request = NarrativeRequest(
            history=build_history(session.pages),
            page_index=page.page_index,
            genre=session.genre,
            active_character_names=session.cast.names,
            villain_description=session.cast.villain.description,
            story_context=format_story_context(snapshot),
            page_limit=session.page_limit,
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"[Epoch:{epoch}] context for page {page.page_index}:\n{build_context(session.pages, snapshot)}")
        log_comic_event(epoch, page.page_index, "narrative requested")

        try:
            beat = await self.writer.write_beat(request)
        except GenerationError as e:
            return self._fail(epoch, page.page_index, e, stage="narrative")

        if not self.is_current(epoch):
            log_comic_event(epoch, page.page_index, "stale narrative discarded")
            return {"next_step": None, "outcome": "stale"}

        page.beat = beat
        page.status = PageStatus.NARRATIVE_READY
        log_comic_event(epoch, page.page_index, "narrative ready")
        return {"next_step": None, "outcome": None}

    async def paint_panel(self, state: PageLoopState) -> dict:
        epoch, position = state["epoch"], state["position"]
        if not self.is_current(epoch):
            return {"next_step": None, "outcome": "stale"}
        session = self.session
        page = session.pages[position]

        request = ImageRequest(beat=page.beat, genre=session.genre, cast=session.cast, page_index=page.page_index)
        log_comic_event(epoch, page.page_index, "image requested")

        try:
            image = await self.painter.paint_panel(request)
        except GenerationError as e:
            return self._fail(epoch, page.page_index, e, stage="image")

        if not self.is_current(epoch):
            log_comic_event(epoch, page.page_index, "stale image discarded")
            return {"next_step": None, "outcome": "stale"}

        page.image = image
        page.status = PageStatus.READY
        log_comic_event(epoch, page.page_index, "page ready")
        return {"next_step": None, "outcome": None}

    async def restore_cover(self, state: PageLoopState) -> dict:
        """The cover is never generated: it shows the hero portrait."""
        if not self.is_current(state["epoch"]):
            return {"next_step": None, "outcome": "stale"}
        session = self.session
        cover = session.pages[state["position"]]
        cover.beat = None
        cover.image = session.cast.hero.portrait_image
        cover.status = PageStatus.READY
        log_comic_event(state["epoch"], cover.page_index, "cover restored")
        return {"next_step": None, "outcome": None}

    async def advance(self, state: PageLoopState) -> dict:
        epoch, position = state["epoch"], state["position"]
        if not self.is_current(epoch):
            return {"next_step": None, "outcome": "stale"}

        session = self.session
        page = session.pages[position]
        is_tail = position == len(session.pages) - 1
        if is_tail and page.kind != PageKind.BACK_COVER and page.page_index < session.page_limit:
            session.pages.append(story_page(page.page_index + 1))
            log_comic_event(epoch, page.page_index + 1, "page queued")
        return {"next_step": None, "outcome": None}

    def _fail(self, epoch: int, page_index: int, error: GenerationError, stage: str) -> dict:
        if not self.is_current(epoch):
            # The user stopped or restarted meanwhile; that action wins.
            log_comic_event(epoch, page_index, f"stale {stage} failure ignored", str(error))
            return {"next_step": None, "outcome": "stale"}

        error.stage = error.stage or stage
        error.page_index = page_index
        session = self.session
        session.last_error = error
        session.failed_page_index = page_index
        session.running = False
        log_error("Page generation failed", error, {"epoch": epoch, "page": page_index, "stage": error.stage})
        return {"next_step": None, "outcome": "failed"}


# --- EDGES ---

def route_selected(state: PageLoopState):
    if state.get("outcome") or not state.get("next_step"):
        return END
    return state["next_step"]


def route_after_narrative(state: PageLoopState):
    if state.get("outcome"):
        return END
    return "select_page"


def route_after_image(state: PageLoopState):
    if state.get("outcome"):
        return END
    return "advance"


def route_after_advance(state: PageLoopState):
    if state.get("outcome"):
        return END
    return "select_page"


# --- GRAPH ---

def build_page_graph(driver: GenerationDriver):
    workflow = StateGraph(PageLoopState)

    workflow.add_node("select_page", driver.select_page)
    workflow.add_node("write_beat", driver.write_beat)
    workflow.add_node("paint_panel", driver.paint_panel)
    workflow.add_node("restore_cover", driver.restore_cover)
    workflow.add_node("advance", driver.advance)

    workflow.set_entry_point("select_page")

    workflow.add_conditional_edges(
        "select_page",
        route_selected,
        {
            "write_beat": "write_beat",
            "paint_panel": "paint_panel",
            "restore_cover": "restore_cover",
            END: END
        }
    )

    workflow.add_conditional_edges(
        "write_beat",
        route_after_narrative,
        {
            "select_page": "select_page",
            END: END
        }
    )

    workflow.add_conditional_edges(
        "paint_panel",
        route_after_image,
        {
            "advance": "advance",
            END: END
        }
    )

    workflow.add_edge("restore_cover", "advance")

    workflow.add_conditional_edges(
        "advance",
        route_after_advance,
        {
            "select_page": "select_page",
            END: END
        }
    )

    return workflow.compile()
