import os
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "change-me-in-production"

PORT = int(os.getenv("PORT", 8000))
APP_ENV = os.getenv("APP_ENV", "production")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pokedex.db")

JWT_SECRET = os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET)
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", 24))

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
    if origin.strip()
]

POKEAPI_BASE = os.getenv("POKEAPI_BASE", "https://pokeapi.co/api/v2")
BACKEND_BASE = os.getenv("BACKEND_BASE", "http://localhost:8000")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", 10))

FIRST_ADMIN_USERNAME = os.getenv("FIRST_ADMIN_USERNAME", "admin")
FIRST_ADMIN_EMAIL = os.getenv("FIRST_ADMIN_EMAIL", "admin@example.com")
FIRST_ADMIN_PASSWORD = os.getenv("FIRST_ADMIN_PASSWORD", "admin123")

# Official catalog ids end here; custom ids continue after it.
MAX_OFFICIAL_ID = 1025
FIRST_CUSTOM_ID = MAX_OFFICIAL_ID + 1
MAX_QUERY_ID = 9999


def is_development() -> bool:
    return APP_ENV == "development"


def check_secrets():
    if JWT_SECRET == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not configured; set it before deploying to production")
