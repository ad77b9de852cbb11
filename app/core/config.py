import os
from typing import List, Optional
from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-3-flash-preview")
GEMINI_TTS_MODEL = os.getenv("GEMINI_TTS_MODEL", "gemini-2.5-flash-preview-tts")
GEMINI_TTS_VOICE = os.getenv("GEMINI_TTS_VOICE", "Kore")
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS", "15"))

# Total attempts for rate-limited calls, including the first one
GEMINI_MAX_ATTEMPTS = int(os.getenv("GEMINI_MAX_ATTEMPTS", "3"))
GEMINI_RETRY_DELAY_SECONDS = float(os.getenv("GEMINI_RETRY_DELAY_SECONDS", "0.5"))

# "presence" only records whether an image was attached, "content" hashes it
CACHE_IMAGE_KEY_POLICY = os.getenv("CACHE_IMAGE_KEY_POLICY", "presence")
CACHE_MAX_ITEMS = int(os.getenv("CACHE_MAX_ITEMS")) if os.getenv("CACHE_MAX_ITEMS") else None
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS")) if os.getenv("CACHE_TTL_SECONDS") else None

ENABLE_ENRICHMENTS = os.getenv("ENABLE_ENRICHMENTS", "true").lower() in ("1", "true", "yes")

# CORS configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
ALLOWED_ORIGINS_LIST = [origin.strip() for origin in ALLOWED_ORIGINS.split(",") if origin.strip()]


class Settings(BaseModel):
    """Runtime settings handed to build_context()"""
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    text_model: str = "gemini-3-flash-preview"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Kore"
    timeout_seconds: float = 15.0
    max_attempts: int = 3
    retry_delay_seconds: float = 0.5
    image_key_policy: str = "presence"
    cache_max_items: Optional[int] = None
    cache_ttl_seconds: Optional[float] = None
    enable_enrichments: bool = True
    allowed_origins: List[str] = []


def get_settings() -> Settings:
    """Build settings from the environment"""
    return Settings(
        gemini_api_key=GEMINI_API_KEY,
        gemini_base_url=GEMINI_BASE_URL,
        text_model=GEMINI_TEXT_MODEL,
        tts_model=GEMINI_TTS_MODEL,
        tts_voice=GEMINI_TTS_VOICE,
        timeout_seconds=GEMINI_TIMEOUT_SECONDS,
        max_attempts=GEMINI_MAX_ATTEMPTS,
        retry_delay_seconds=GEMINI_RETRY_DELAY_SECONDS,
        image_key_policy=CACHE_IMAGE_KEY_POLICY,
        cache_max_items=CACHE_MAX_ITEMS,
        cache_ttl_seconds=CACHE_TTL_SECONDS,
        enable_enrichments=ENABLE_ENRICHMENTS,
        allowed_origins=ALLOWED_ORIGINS_LIST,
    )


# Log configuration on startup
import logging
logger = logging.getLogger(__name__)
logger.info(f"Gemini models: text={GEMINI_TEXT_MODEL}, tts={GEMINI_TTS_MODEL}")
logger.info(f"CORS Origins List: {ALLOWED_ORIGINS_LIST}")
