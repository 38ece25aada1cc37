import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

BOT_TOKEN = os.getenv("BOT_TOKEN", "")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'rentride.db'}")

OTP_LENGTH = int(os.getenv("OTP_LENGTH", "4"))
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "300"))
OTP_COOLDOWN_SECONDS = int(os.getenv("OTP_COOLDOWN_SECONDS", "60"))
MAX_LISTING_PHOTOS = int(os.getenv("MAX_LISTING_PHOTOS", "8"))

LOCAL_STATE_DIR = Path(os.getenv("LOCAL_STATE_DIR", str(BASE_DIR / "data" / "local_state")))
MEDIA_DIR = Path(os.getenv("MEDIA_DIR", str(BASE_DIR / "data" / "media")))
MEDIA_BASE_URL = os.getenv("MEDIA_BASE_URL", "http://localhost:8000/media")
UPLOAD_TMP_DIR = Path(os.getenv("UPLOAD_TMP_DIR", str(BASE_DIR / "data" / "uploads")))

# Riyadh city centre, the origin of the demo listings' distances
REFERENCE_LATITUDE = float(os.getenv("REFERENCE_LATITUDE", "24.7136"))
REFERENCE_LONGITUDE = float(os.getenv("REFERENCE_LONGITUDE", "46.6753"))

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

SEED_DEMO_CARS = os.getenv("SEED_DEMO_CARS", "1") == "1"
LOG_PATH = os.getenv("LOG_PATH", "logs/bot.log")
