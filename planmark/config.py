# config.py: environment driven settings (.env is read once on import)

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent
WORK_DIR = Path(os.getenv("WORK_DIR", BASE_DIR / "work"))
WORK_DIR.mkdir(parents=True, exist_ok=True)

SECRET_KEY = os.getenv("FLASK_SECRET", "dev-secret")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{WORK_DIR / 'planmark.db'}")

USE_S3 = os.getenv("USE_S3", "false").lower() == "true"
S3_BUCKET = os.getenv("S3_BUCKET")
S3_REGION = os.getenv("S3_REGION")

RENDER_DPI = int(os.getenv("RENDER_DPI", "150"))
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "50"))
AUTOSAVE_DELAY = float(os.getenv("AUTOSAVE_DELAY", "1.0"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
