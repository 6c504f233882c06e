import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Ortam değişkenlerini yükle (.env)
load_dotenv()

logger = logging.getLogger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default


def _env_int_list(name: str, default: tuple) -> tuple:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        values = tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    return values or default


# --- Görsel Optimizasyon Ayarları ---
MAX_IMAGE_DIMENSION = _env_int("MAX_IMAGE_DIMENSION", 2048)
MAX_IMAGE_BYTES = _env_int("MAX_IMAGE_BYTES", 10 * 1024 * 1024)  # 10 MiB
JPEG_QUALITY = _env_int("JPEG_QUALITY", 80)
QUALITY_STEPS = _env_int_list("QUALITY_STEPS", (80, 60, 40, 20))
ALLOWED_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.webp', '.heic'}
MAX_UPLOAD_SIZE = 50 * 1024 * 1024  # 50MB

# --- Görüntüleme (zoom/pan) Sınırları ---
MIN_VIEW_SCALE = 0.5
MAX_VIEW_SCALE = 10.0

# --- Yollar ve Klasörler ---
BASE_DIR = Path(__file__).parent.parent
DOCUMENTS_DIR = Path(os.getenv("DOCUMENTS_DIR", str(BASE_DIR / "data" / "documents")))
CACHE_DIR_NAME = "cache"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'data' / 'plates.db'}")

# --- Uzak Depolama (S3) Yeniden Deneme Politikası ---
REMOTE_MAX_ATTEMPTS = _env_int("REMOTE_MAX_ATTEMPTS", 3)
REMOTE_RETRY_DELAY = _env_float("REMOTE_RETRY_DELAY", 2.0)  # saniye

# --- AWS S3 Ayarları ---
AWS_ACCESS_KEY_ID = os.getenv("AWS_ACCESS_KEY_ID")
AWS_SECRET_ACCESS_KEY = os.getenv("AWS_SECRET_ACCESS_KEY")
AWS_S3_BUCKET_NAME = os.getenv("AWS_S3_BUCKET_NAME")
AWS_S3_REGION = os.getenv("AWS_S3_REGION")
# (Opsiyonel) MinIO gibi S3 uyumlu servisler için
AWS_S3_ENDPOINT_URL = os.getenv("AWS_S3_ENDPOINT_URL")
AWS_S3_KEY_PREFIX = os.getenv("AWS_S3_KEY_PREFIX", "plates")
