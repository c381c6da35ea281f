# termplan/config.py
import os
from pathlib import Path

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./termplan.db")

EXPORT_DIR = Path(os.getenv("EXPORT_DIR", "exports"))

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if o.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
