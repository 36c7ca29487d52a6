"""
Context builder for the narrative writer.

Everything here is pure: the same pages and snapshot always give the same text.
"""
from typing import List, Optional, Protocol, Sequence

from infinite_heroes.schemas.comic import Page, StorySnapshot

MAX_SCENE_SUMMARIES = 3
DEFAULT_PREMISE = "Original Adventure"


class StoryContextProvider(Protocol):
    def snapshot(self) -> StorySnapshot:
        ...


class StaticStoryContext:
    """Story context held in memory, e.g. sent along with the start request."""

    def __init__(self, premise: Optional[str] = None, scene_summaries: Optional[List[str]] = None):
        self.premise = premise
        self.scene_summaries = list(scene_summaries or [])

    def snapshot(self) -> StorySnapshot:
        return StorySnapshot(premise=self.premise, scene_summaries=list(self.scene_summaries))


def build_history(pages: Sequence[Page]) -> str:
    lines = []
    for page in pages:
        if not page.is_ready or page.beat is None:
            continue
        caption = page.beat.caption or ""
        dialogue = page.beat.dialogue or ""
        lines.append(f"Page {page.page_index}: {caption} {dialogue}".rstrip())
    return "\n".join(lines)


def format_story_context(snapshot: StorySnapshot) -> str:
    premise = (snapshot.premise or "").strip() or DEFAULT_PREMISE
    summaries = [s.strip() for s in snapshot.scene_summaries[:MAX_SCENE_SUMMARIES] if s and s.strip()]
    scenes = "; ".join(summaries) or "None"
    return f"STORY PREMISE: {premise}\nRELEVANT SCENES: {scenes}"


def build_context(pages: Sequence[Page], snapshot: StorySnapshot) -> str:
    history = build_history(pages)
    story_context = format_story_context(snapshot)
    if not history:
        return story_context
    return f"{history}\n\n{story_context}"


def page_instruction(page_index: int, limit: int) -> str:
    if page_index == limit:
        return "This is the last page. End with a cliffhanger."
    if page_index == 1:
        return "Establish the setting and the hero."
    return "Advance the plot with conflict."
