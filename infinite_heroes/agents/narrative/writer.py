import json
import re
from typing import Any, Dict, Optional

from groq import AsyncGroq
from pydantic import ValidationError as PydanticValidationError

from infinite_heroes.agents.context_loader import load_context, wrap_page_instructions, get_user_friendly_error
from infinite_heroes.agents.retry import call_with_retry
from infinite_heroes.comic.context import page_instruction
from infinite_heroes.core.config import settings
from infinite_heroes.core.errors import GenerationError
from infinite_heroes.core.logger import log_agent_action
from infinite_heroes.schemas.comic import Beat, FocusRole, NarrativeRequest, Role

FOCUS_ALIASES = {
    "hero": FocusRole.HERO,
    "co-star": FocusRole.COSTAR,
    "costar": FocusRole.COSTAR,
    "co_star": FocusRole.COSTAR,
    "villain": FocusRole.VILLAIN,
    "other": FocusRole.OTHER,
}

EMOTION_FIELDS = {
    "hero_emotion": Role.HERO,
    "costar_emotion": Role.COSTAR,
    "villain_emotion": Role.VILLAIN,
}

FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def _clean_json(content: str) -> str:
    return FENCE_RE.sub("", (content or "").strip())


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_beat(content: str) -> Beat:
    """
    Turn the writer's JSON answer into a Beat.

    Unknown focus characters fall back to "other"; a missing scene
    description is a format violation.
    """
    try:
        payload = json.loads(_clean_json(content))
    except json.JSONDecodeError as e:
        raise GenerationError(get_user_friendly_error("FORMAT_VIOLATION"), stage="narrative") from e

    if not isinstance(payload, dict):
        raise GenerationError(get_user_friendly_error("FORMAT_VIOLATION"), stage="narrative")

    focus = str(payload.get("focus_char") or "other").strip().lower()
    emotions: Dict[Role, str] = {}
    for field, role in EMOTION_FIELDS.items():
        emotion = _optional_text(payload.get(field))
        if emotion:
            emotions[role] = emotion

    try:
        return Beat(
            caption=_optional_text(payload.get("caption")),
            dialogue=_optional_text(payload.get("dialogue")),
            scene_description=str(payload.get("scene") or ""),
            focus_role=FOCUS_ALIASES.get(focus, FocusRole.OTHER),
            emotion_by_role=emotions,
        )
    except PydanticValidationError as e:
        raise GenerationError(get_user_friendly_error("FORMAT_VIOLATION"), stage="narrative") from e


class NarrativeWriter:
    """Writes one page beat at a time with the Groq chat API."""

    def __init__(self, client: Optional[AsyncGroq] = None, model: Optional[str] = None):
        self.client = client or AsyncGroq(api_key=settings.GROQ_API_KEY)
        self.model = model or settings.NARRATIVE_MODEL
        # Load hardened system prompt from context file
        self.system_prompt = load_context("writer")

    def build_prompt(self, request: NarrativeRequest) -> str:
        instructions = f"""
PAGE {request.page_index}. GENRE: {request.genre}.
CHARACTERS:
- ACTIVE: {', '.join(request.active_character_names)}
- VILLAIN: {request.villain_description or 'Evil villain'}

INSTRUCTION: {page_instruction(request.page_index, request.page_limit)}
"""
        wrapped_inst, wrapped_hist, wrapped_ctx = wrap_page_instructions(
            instructions, request.history, request.story_context
        )
        return f"""
{wrapped_ctx}

{wrapped_hist}

{wrapped_inst}

Write this page now. Return ONLY the JSON object described in your rules.
"""

    async def write_beat(self, request: NarrativeRequest) -> Beat:
        prompt = self.build_prompt(request)

        async def _complete() -> str:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.8,
                max_tokens=1024,
                response_format={"type": "json_object"}
            )
            return completion.choices[0].message.content or ""

        try:
            content = await call_with_retry(_complete, label="narrative")
            beat = parse_beat(content)
        except GenerationError as e:
            e.page_index = request.page_index
            log_agent_action("writer", f"page {request.page_index}", str(e), success=False)
            raise

        log_agent_action("writer", f"page {request.page_index}", f"focus={beat.focus_role.value}")
        return beat
