import json
from typing import Optional

from groq import AsyncGroq

from infinite_heroes.agents.context_loader import load_context, wrap_user_input, get_user_friendly_error
from infinite_heroes.agents.narrative.painter import PanelPainter
from infinite_heroes.agents.retry import call_with_retry
from infinite_heroes.core.config import settings
from infinite_heroes.core.errors import GenerationError
from infinite_heroes.core.logger import log_agent_action
from infinite_heroes.schemas.comic import CastMember, Role


class VillainGenerator:
    """Invents a villain opposing the hero and paints its reference portrait."""

    def __init__(self, painter: PanelPainter, client: Optional[AsyncGroq] = None, model: Optional[str] = None):
        self.painter = painter
        self.client = client or AsyncGroq(api_key=settings.GROQ_API_KEY)
        self.model = model or settings.NARRATIVE_MODEL
        self.system_prompt = load_context("villain")

    async def _persona(self, hero_description: str, genre: str) -> dict:
        hero_input = wrap_user_input(f"Genre: {genre}\nHero: {hero_description}")
        prompt = f"""
{hero_input}

Create a villain for a {genre} comic who opposes this hero.
"""

        async def _complete() -> str:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.system_prompt},
                    {"role": "user", "content": prompt}
                ],
                temperature=0.9,
                response_format={"type": "json_object"}
            )
            return completion.choices[0].message.content or ""

        content = await call_with_retry(_complete, label="villain")
        try:
            persona = json.loads(content)
        except json.JSONDecodeError as e:
            raise GenerationError(get_user_friendly_error("VILLAIN_ERROR"), stage="villain") from e

        if not isinstance(persona, dict) or not persona.get("name") or not persona.get("desc"):
            raise GenerationError(get_user_friendly_error("VILLAIN_ERROR"), stage="villain")
        return persona

    async def generate(self, hero_description: str, genre: str) -> CastMember:
        try:
            persona = await self._persona(hero_description, genre)
            image_prompt = f"{genre} comic book villain concept art. {persona['desc']}. Full body, white background."
            portrait = await self.painter.paint_portrait(image_prompt, prefix="villain")
        except GenerationError as e:
            log_agent_action("villain", "generate", str(e), success=False)
            raise

        log_agent_action("villain", "generate", persona["name"])
        return CastMember(
            name=str(persona["name"]).strip(),
            description=str(persona["desc"]).strip(),
            portrait_image=portrait,
            role=Role.VILLAIN,
        )
