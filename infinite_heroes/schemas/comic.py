from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from infinite_heroes.core.errors import GenerationError


# --- CAST ---

class Role(str, Enum):
    HERO = "hero"
    COSTAR = "co-star"
    VILLAIN = "villain"


class CastMember(BaseModel):
    name: str
    description: str
    portrait_image: str  # URL or data URI of the reference portrait
    role: Role

    model_config = ConfigDict(frozen=True)


class Cast(BaseModel):
    hero: CastMember
    costar: CastMember
    villain: CastMember

    model_config = ConfigDict(frozen=True)

    @property
    def members(self) -> Tuple[CastMember, CastMember, CastMember]:
        return (self.hero, self.costar, self.villain)

    @property
    def names(self) -> List[str]:
        return [member.name for member in self.members]

    def by_role(self, role: Role) -> CastMember:
        return {
            Role.HERO: self.hero,
            Role.COSTAR: self.costar,
            Role.VILLAIN: self.villain,
        }[Role(role)]


# --- BEATS ---

class FocusRole(str, Enum):
    HERO = "hero"
    COSTAR = "co-star"
    VILLAIN = "villain"
    OTHER = "other"


class Beat(BaseModel):
    caption: Optional[str] = None
    dialogue: Optional[str] = None
    scene_description: str = Field(..., min_length=1)
    focus_role: FocusRole = FocusRole.OTHER
    emotion_by_role: Dict[Role, str] = Field(default_factory=dict)

    @field_validator("scene_description")
    @classmethod
    def scene_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("scene_description must not be blank")
        return value.strip()


# --- PAGES ---

class PageKind(str, Enum):
    COVER = "cover"
    STORY = "story"
    BACK_COVER = "back_cover"


class PageStatus(str, Enum):
    PENDING = "pending"
    NARRATIVE_READY = "narrative-ready"
    READY = "ready"
    FAILED = "failed"  # reserved for presentation; the driver keeps the last valid sub-state


class Page(BaseModel):
    id: str
    kind: PageKind = PageKind.STORY
    page_index: int = Field(..., ge=0)
    beat: Optional[Beat] = None
    image: Optional[str] = None
    status: PageStatus = PageStatus.PENDING

    @property
    def is_ready(self) -> bool:
        return self.status == PageStatus.READY

    def reset(self) -> None:
        """Drop generated content so the page is generated again from scratch."""
        self.beat = None
        self.image = None
        self.status = PageStatus.PENDING


def cover_page(cast: Cast) -> Page:
    return Page(
        id="cover",
        kind=PageKind.COVER,
        page_index=0,
        image=cast.hero.portrait_image,
        status=PageStatus.READY,
    )


def story_page(page_index: int) -> Page:
    return Page(id=f"p{page_index}", kind=PageKind.STORY, page_index=page_index)


def back_cover_page(page_index: int) -> Page:
    return Page(
        id="back",
        kind=PageKind.BACK_COVER,
        page_index=page_index,
        status=PageStatus.READY,
    )


# --- SESSION ---

class GenerationSession(BaseModel):
    cast: Cast
    genre: str
    pages: List[Page] = Field(default_factory=list)
    epoch: int = 0
    running: bool = False
    last_error: Optional[GenerationError] = None
    failed_page_index: Optional[int] = None
    page_limit: int = 10

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def current_page(self) -> Optional[Page]:
        """First page that still needs generation (the one shown as in progress)."""
        for page in self.pages:
            if page.kind != PageKind.BACK_COVER and not page.is_ready:
                return page
        return None

    @property
    def is_complete(self) -> bool:
        return bool(self.pages) and self.pages[-1].kind == PageKind.BACK_COVER


# --- GENERATOR REQUESTS ---

class NarrativeRequest(BaseModel):
    history: str
    page_index: int
    genre: str
    active_character_names: List[str]
    villain_description: str
    story_context: str
    # Last story page of the session the request belongs to
    page_limit: int = Field(..., ge=1)


class ImageRequest(BaseModel):
    beat: Beat
    genre: str
    cast: Cast
    page_index: Optional[int] = None


class StorySnapshot(BaseModel):
    premise: Optional[str] = None
    scene_summaries: List[str] = Field(default_factory=list)
