import os
from functools import lru_cache

from dotenv import load_dotenv, find_dotenv

# environment variables win over values from a local .env
load_dotenv(dotenv_path=find_dotenv(".env"), override=False)


class Settings:
    # Mongo (trips + users are owned by the CRUD service, read-only here)
    MONGO_URL: str = os.getenv("MONGO_URL", "")
    MONGO_DB: str = os.getenv("MONGO_DB", "tripsync")

    # JWT
    JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    JWT_ALG: str = "HS256"
    JWT_EXPIRE_MIN: int = int(os.getenv("JWT_EXPIRE_MIN", "60"))

    # Allow http://localhost:anyport and http://127.0.0.1:anyport
    CORS_ORIGIN_REGEX: str = os.getenv(
        "CORS_ORIGIN_REGEX", r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"
    )

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Location sharing defaults (milliseconds)
    LOCATION_UPDATE_INTERVAL_MS: int = int(os.getenv("LOCATION_UPDATE_INTERVAL_MS", "10000"))
    LOCATION_UPDATE_INTERVAL_MIN_MS: int = 5000
    LOCATION_UPDATE_INTERVAL_MAX_MS: int = 60000


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
