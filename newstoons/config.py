# config.py
import os
from pathlib import Path

from dotenv import load_dotenv

# ------------------ ENV & CONFIG ------------------
load_dotenv()

# The key is checked lazily by the API client so the package imports without one.
API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY") or ""

# Models (override via env if your account uses different names)
TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-3-pro-preview")
IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-3-pro-image-preview")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")

# News search proxy (GET /search?q&max&scoring, GET ../article/content?url)
NEWS_API_BASE = os.getenv(
    "NEWS_API_BASE", "http://localhost:3001/api/news").rstrip("/")
DEFAULT_NEWS_LIMIT = int(os.getenv("DEFAULT_NEWS_LIMIT", "10"))

# Seconds; requests has no default timeout
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "120"))

# Image generation quota
IMAGE_GENERATION_LIMIT = int(os.getenv("IMAGE_GENERATION_LIMIT", "2"))
IMAGE_GENERATION_WINDOW = float(os.getenv("IMAGE_GENERATION_WINDOW", "60"))

IMAGE_CACHE_TTL = 60 * 60
NEWS_CACHE_TTL = 5 * 60

PRINT_PROMPTS = os.getenv("PRINT_PROMPTS", "0") == "1"
# Development mode exposes error details in API responses
DEBUG = os.getenv("NEWSTOONS_DEBUG", "0") == "1"

OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", "output"))
