import os
from pathlib import Path
from dotenv import load_dotenv

# Load variables from .env file
load_dotenv()

class Settings:
    PROJECT_NAME: str = "Infinite Heroes"
    VERSION: str = "1.0.0"

    # AI Keys
    GROQ_API_KEY: str = os.getenv("GROQ_API_KEY")
    STABLE_DIFFUSION_API_KEY: str = os.getenv("STABLE_DIFFUSION_API_KEY")

    # Models
    NARRATIVE_MODEL: str = os.getenv("NARRATIVE_MODEL", "llama-3.3-70b-versatile")
    IMAGE_MODEL_ID: str = os.getenv("IMAGE_MODEL_ID", "nano-banana")
    IMAGE_API_URL: str = os.getenv("IMAGE_API_URL", "https://modelslab.com/api/v7/images/image-to-image")
    TEXT_TO_IMAGE_API_URL: str = os.getenv("TEXT_TO_IMAGE_API_URL", "https://modelslab.com/api/v7/images/text-to-image")

    # Comic generation
    COMIC_PAGE_LIMIT: int = int(os.getenv("COMIC_PAGE_LIMIT", "10"))
    GENERATION_TIMEOUT_SECONDS: float = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "90"))
    GENERATION_MAX_ATTEMPTS: int = int(os.getenv("GENERATION_MAX_ATTEMPTS", "3"))
    GENERATION_BACKOFF_SECONDS: float = float(os.getenv("GENERATION_BACKOFF_SECONDS", "1.0"))
    # Finished comics nobody polled for this long are dropped from memory
    SESSION_IDLE_SECONDS: float = float(os.getenv("SESSION_IDLE_SECONDS", "3600"))

    # Storage
    STATIC_DIR: Path = Path(os.getenv("STATIC_DIR", str(Path(__file__).resolve().parent.parent / "static")))
    LOGS_DIR: Path = Path(os.getenv("LOGS_DIR", str(Path(__file__).resolve().parent.parent.parent / "logs")))

settings = Settings()
