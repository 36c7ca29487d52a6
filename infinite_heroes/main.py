from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from infinite_heroes.api import comic
from infinite_heroes.core.config import settings
from infinite_heroes.core.logger import get_logger

logger = get_logger("main")

# Generated panels are written under static/images
(settings.STATIC_DIR / "images").mkdir(parents=True, exist_ok=True)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} starting")
    yield
    for session_id in list(comic.comic_sessions):
        comic.discard_session(session_id)

app = FastAPI(title="Infinite Heroes API", version=settings.VERSION, lifespan=lifespan)

#Mount Static Files
app.mount("/static", StaticFiles(directory=str(settings.STATIC_DIR)), name="static")

#Include Routers
app.include_router(comic.router, prefix="/api/comic", tags=["Comic"])

@app.get("/health")
def health():
    return {"ok": True}
