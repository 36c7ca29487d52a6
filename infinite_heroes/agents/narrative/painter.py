import asyncio
import os
import time
from pathlib import Path
from typing import List, Optional

import requests

from infinite_heroes.agents.context_loader import get_user_friendly_error
from infinite_heroes.agents.retry import call_with_retry
from infinite_heroes.core.config import settings
from infinite_heroes.core.errors import GenerationError
from infinite_heroes.core.logger import log_agent_action
from infinite_heroes.schemas.comic import Beat, ImageRequest, Role

DEFAULT_EMOTIONS = {
    Role.HERO: "Determined",
    Role.COSTAR: "Concerned",
    Role.VILLAIN: "Evil",
}


def build_panel_prompt(beat: Beat, genre: str) -> str:
    emotion = {role: beat.emotion_by_role.get(role) or default for role, default in DEFAULT_EMOTIONS.items()}
    return f"""STYLE: {genre} comic book art. High contrast, vibrant colors, bold lines.
SCENE: {beat.scene_description}.

INSTRUCTIONS:
- If scene mentions HERO, use REFERENCE 1. Expression: {emotion[Role.HERO]}.
- If scene mentions CO-STAR, use REFERENCE 2. Expression: {emotion[Role.COSTAR]}.
- If scene mentions VILLAIN, use REFERENCE 3. Expression: {emotion[Role.VILLAIN]}.

Ensure character consistency with provided references."""


# Upper bound for a single HTTP exchange with the image API
HTTP_TIMEOUT_SECONDS = 60


def _time_left(deadline: float) -> float:
    """Seconds left before deadline; raises TimeoutError once it has passed."""
    left = deadline - time.monotonic()
    if left <= 0:
        raise TimeoutError("image request deadline passed")
    return min(HTTP_TIMEOUT_SECONDS, left)


class PanelPainter:
    """
    Paints panels through the ModelsLab image API.
    Images are downloaded into static/images and referenced by URL path.

    Painting runs in a worker thread that cannot be cancelled, so every
    attempt carries a deadline equal to the generation timeout: HTTP calls
    never wait past it and nothing is written to disk once it has passed.
    """

    def __init__(self, api_key: Optional[str] = None, output_dir: Optional[Path] = None,
                 http: Optional[requests.Session] = None):
        self.api_key = api_key or settings.STABLE_DIFFUSION_API_KEY
        self.output_dir = output_dir or (settings.STATIC_DIR / "images")
        self.http = http or requests.Session()

    def _post(self, url: str, payload: dict, deadline: float) -> str:
        resp = self.http.post(url, json={**payload, "key": self.api_key}, timeout=_time_left(deadline))
        resp.raise_for_status()
        data = resp.json()

        image_url = None
        if data.get("output"):
            image_url = data["output"][0]

        if not image_url:
            # "processing" and "error" answers are retried
            raise RuntimeError(f"Image API returned no output (status={data.get('status')})")
        return image_url

    def _download(self, image_url: str, prefix: str, deadline: float) -> str:
        img_resp = self.http.get(image_url, timeout=_time_left(deadline))
        img_resp.raise_for_status()

        # The awaiting side has given up on this attempt
        _time_left(deadline)

        self.output_dir.mkdir(parents=True, exist_ok=True)
        filename = f"{prefix}_{os.urandom(4).hex()}.png"
        file_path = self.output_dir / filename

        with open(file_path, "wb") as f:
            f.write(img_resp.content)

        return f"/static/images/{filename}"

    def _paint_with_references(self, prompt: str, references: List[str], prefix: str, deadline: float) -> str:
        payload = {
            "prompt": prompt,
            "model_id": settings.IMAGE_MODEL_ID,
            "init_image": references,
            "aspect_ratio": "2:3",
        }
        return self._download(self._post(settings.IMAGE_API_URL, payload, deadline), prefix, deadline)

    def _paint_from_text(self, prompt: str, prefix: str, deadline: float) -> str:
        payload = {
            "prompt": prompt,
            "model_id": f"{settings.IMAGE_MODEL_ID}-t2i",
            "width": 512,
            "height": 768,
            "samples": 1,
        }
        return self._download(self._post(settings.TEXT_TO_IMAGE_API_URL, payload, deadline), prefix, deadline)

    def _require_key(self, stage: str) -> None:
        if not self.api_key:
            raise GenerationError(get_user_friendly_error("IMAGE_ERROR"), stage=stage)

    @staticmethod
    def _deadline() -> float:
        return time.monotonic() + settings.GENERATION_TIMEOUT_SECONDS

    async def paint_panel(self, request: ImageRequest) -> str:
        """Paint the panel for one beat, using the three portraits as references."""
        self._require_key("image")
        prompt = build_panel_prompt(request.beat, request.genre)
        references = [member.portrait_image for member in request.cast.members]
        prefix = f"page_{request.page_index if request.page_index is not None else 'x'}"

        try:
            image = await call_with_retry(
                lambda: asyncio.to_thread(self._paint_with_references, prompt, references, prefix, self._deadline()),
                label="image",
            )
        except GenerationError as e:
            e.page_index = request.page_index
            log_agent_action("painter", f"page {request.page_index}", str(e), success=False)
            raise

        log_agent_action("painter", f"page {request.page_index}", image)
        return image

    async def paint_portrait(self, prompt: str, prefix: str = "portrait") -> str:
        """Paint a standalone character portrait from text only."""
        self._require_key("portrait")
        image = await call_with_retry(
            lambda: asyncio.to_thread(self._paint_from_text, prompt, prefix, self._deadline()),
            label="portrait",
        )
        log_agent_action("painter", "portrait", image)
        return image
