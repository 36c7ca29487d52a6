from typing import List, Optional
from pydantic import BaseModel, Field

from infinite_heroes.schemas.comic import CastMember, Page

# ---------- Request payloads ----------

class CastMemberIn(BaseModel):
    name: str = ""
    description: str = ""
    portrait_image: str = ""


class StartComicRequest(BaseModel):
    genre: str = "Superhero"
    hero: CastMemberIn
    costar: CastMemberIn
    villain: CastMemberIn
    # Story context from the writer's project
    premise: Optional[str] = None
    scenes: List[str] = Field(default_factory=list)


class RegenerateRequest(BaseModel):
    page_index: int
    genre: Optional[str] = None


class VillainRequest(BaseModel):
    hero_description: str = Field(..., min_length=1)
    genre: str = "Superhero"

# ---------- Responses ----------

class ComicSessionRead(BaseModel):
    session_id: str
    epoch: int
    genre: str
    running: bool
    is_complete: bool
    current_page_index: Optional[int] = None
    failed_page_index: Optional[int] = None
    last_error: Optional[str] = None
    pages: List[Page]


class VillainRead(BaseModel):
    villain: CastMember
