from typing import TypedDict, Optional


class PageLoopState(TypedDict):
    # Epoch captured when this run was scheduled
    epoch: int

    # Position in session.pages of the page being worked on
    position: Optional[int]

    # Node chosen by select_page (write_beat, paint_panel, restore_cover)
    next_step: Optional[str]

    # Why the run ended: finished, stopped, failed, stale, exhausted
    outcome: Optional[str]
