import asyncio
from functools import partial
from typing import Any, List, Mapping, Optional, Union

from infinite_heroes.agents.context_loader import get_user_friendly_error
from infinite_heroes.comic.cast import ensure_cast
from infinite_heroes.core.config import settings
from infinite_heroes.core.errors import GenerationError, InvalidPageIndexError, StateError, ValidationError
from infinite_heroes.core.graph.workflow import GenerationDriver
from infinite_heroes.core.logger import log_comic_event, log_error
from infinite_heroes.schemas.comic import (
    Cast,
    GenerationSession,
    Page,
    PageKind,
    cover_page,
    story_page,
)

CastArg = Union[Cast, Mapping[str, Any]]

# Story pages queued at start, next to the cover
SEED_PAGES = (1, 2)


class ComicSessionController:
    """
    Owns start / stop / regenerate for one comic.

    The epoch counter survives across sessions so that a run scheduled for an
    earlier session can never match a later one.
    """

    def __init__(self, driver: GenerationDriver, page_limit: Optional[int] = None):
        if page_limit is None:
            page_limit = settings.COMIC_PAGE_LIMIT
        if page_limit < 1:
            raise ValidationError(f"Page limit must be at least 1, got {page_limit}")
        self.driver = driver
        self.page_limit = page_limit
        self.task: Optional[asyncio.Task] = None
        self._epoch = 0

    # --- READ ACCESS ---

    @property
    def session(self) -> Optional[GenerationSession]:
        return self.driver.session

    @property
    def pages(self) -> List[Page]:
        return self.session.pages if self.session else []

    @property
    def running(self) -> bool:
        return bool(self.session and self.session.running)

    @property
    def last_error(self) -> Optional[GenerationError]:
        return self.session.last_error if self.session else None

    @property
    def current_page(self) -> Optional[Page]:
        return self.session.current_page if self.session else None

    # --- COMMANDS ---

    def start(self, genre: str, cast: CastArg) -> asyncio.Task:
        loop = self._loop()
        cast = ensure_cast(cast)
        genre = self._check_genre(genre)

        self._epoch += 1
        self.driver.session = GenerationSession(
            cast=cast,
            genre=genre,
            pages=[cover_page(cast)] + [story_page(i) for i in SEED_PAGES if i <= self.page_limit],
            epoch=self._epoch,
            running=True,
            page_limit=self.page_limit,
        )
        log_comic_event(self._epoch, None, "session started", f"genre={genre} cast={', '.join(cast.names)}")
        return self._launch(loop, self._epoch)

    def stop(self) -> None:
        session = self.session
        if session is None:
            return
        session.running = False
        log_comic_event(session.epoch, None, "stop requested")

    def regenerate(self, page_index: int, genre: str, cast: CastArg) -> asyncio.Task:
        session = self.session
        if session is None:
            raise StateError("No comic session to regenerate")
        if not 0 <= page_index < len(session.pages):
            raise InvalidPageIndexError(page_index, len(session.pages))
        if session.pages[page_index].kind == PageKind.BACK_COVER:
            raise StateError("The back cover is not generated and cannot be regenerated")

        loop = self._loop()
        cast = ensure_cast(cast)
        genre = self._check_genre(genre)

        del session.pages[page_index + 1:]
        session.pages[page_index].reset()
        session.genre = genre
        session.cast = cast
        session.last_error = None
        session.failed_page_index = None

        self._epoch += 1
        session.epoch = self._epoch
        session.running = True
        log_comic_event(self._epoch, page_index, "regeneration requested")
        return self._launch(loop, self._epoch)

    # --- INTERNALS ---

    @staticmethod
    def _loop() -> asyncio.AbstractEventLoop:
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise StateError("Comic generation needs a running event loop") from e

    @staticmethod
    def _check_genre(genre: str) -> str:
        if not genre or not str(genre).strip():
            raise ValidationError("Genre is required")
        return str(genre).strip()

    def _launch(self, loop: asyncio.AbstractEventLoop, epoch: int) -> asyncio.Task:
        task = loop.create_task(self.driver.run(epoch))
        task.add_done_callback(partial(self._on_run_done, epoch))
        self.task = task
        return task

    def _on_run_done(self, epoch: int, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return

        log_error("Comic generation run crashed", error, {"epoch": epoch})
        if self.driver.is_current(epoch):
            if not isinstance(error, GenerationError):
                error = GenerationError(get_user_friendly_error("GENERATION_ERROR"))
            self.session.last_error = error
            self.session.running = False
