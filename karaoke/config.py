"""
Karaoke Queue Service - Configuration
All settings loaded from environment variables with sensible defaults.

The service is stateless apart from its SQLite file.  Identity comes from an
external provider as a signed bearer token; push notifications and the
Spotify catalog are reached over HTTP.
"""

import os
import tempfile
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
_ = load_dotenv()

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------
APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
APP_ENV = os.getenv("APP_ENV", "development")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
DEBUG = os.getenv("DEBUG", "true").lower() == "true"
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")

if APP_ENV == "production" and SECRET_KEY == "change-me-in-production":
    raise RuntimeError(
        "SECRET_KEY must be changed from the default value in production. "
        "Set the SECRET_KEY environment variable to a random secret."
    )

# ---------------------------------------------------------------------------
# Authentication (bearer tokens signed with SECRET_KEY)
# ---------------------------------------------------------------------------
# Max token age in seconds, default 7 days
TOKEN_MAX_AGE = int(os.getenv("TOKEN_MAX_AGE", str(60 * 60 * 24 * 7)))

# Comma-separated list of allowed browser origins
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:8081,http://localhost:19006,http://localhost:19000",
    ).split(",")
    if origin.strip()
]

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
TEMP_DIR = Path(os.getenv("TEMP_DIR", os.path.join(tempfile.gettempdir(), "karaoke")))
DB_PATH = Path(os.getenv("DB_PATH", os.path.join(TEMP_DIR, "karaoke.db")))

# ---------------------------------------------------------------------------
# Logging (stdout only)
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

# ---------------------------------------------------------------------------
# Catalog search
# ---------------------------------------------------------------------------
SEARCH_DEFAULT_LIMIT = int(os.getenv("SEARCH_DEFAULT_LIMIT", "20"))
SEARCH_MAX_LIMIT = int(os.getenv("SEARCH_MAX_LIMIT", "50"))
USER_SEARCH_LIMIT = int(os.getenv("USER_SEARCH_LIMIT", "20"))

# ---------------------------------------------------------------------------
# Outbound HTTP
# ---------------------------------------------------------------------------
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))

# ---------------------------------------------------------------------------
# Spotify (client-credentials catalog lookups)
# ---------------------------------------------------------------------------
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_ACCOUNTS_URL = os.getenv("SPOTIFY_ACCOUNTS_URL", "https://accounts.spotify.com")
SPOTIFY_API_URL = os.getenv("SPOTIFY_API_URL", "https://api.spotify.com/v1")
# Refresh the app token this many seconds before Spotify says it expires
SPOTIFY_TOKEN_EXPIRY_MARGIN = int(os.getenv("SPOTIFY_TOKEN_EXPIRY_MARGIN", "60"))

# ---------------------------------------------------------------------------
# Push notifications (Expo)
# ---------------------------------------------------------------------------
NOTIFICATIONS_ENABLED = os.getenv("NOTIFICATIONS_ENABLED", "true").lower() == "true"
EXPO_PUSH_URL = os.getenv("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_ACCESS_TOKEN = os.getenv("EXPO_ACCESS_TOKEN", "")
# Expo accepts at most 100 messages per request
EXPO_CHUNK_SIZE = 100


def ensure_directories() -> None:
    """Create the local directory that holds the SQLite file."""
    TEMP_DIR.mkdir(parents=True, exist_ok=True)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
