"""Runtime configuration read from the environment (and an optional .env file)."""

import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./edumind.db")

JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_DAYS: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")

# Unset means the in-memory cache is used
REDIS_URL: str = os.getenv("REDIS_URL", "")

SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "false").lower() == "true"

SERVICE_NAME = "EduMind AI Backend"
SERVICE_VERSION = "1.0.0"
