import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "changeme"


class Settings(BaseModel):
    store: str = "memory"
    data_dir: str = "./data"
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expire_minutes: int = 60 * 24
    allow_origin: str = "*"
    broadcast_timeout: float = 5.0
    port: int = 8080


def load_settings() -> Settings:
    settings = Settings(
        store=os.getenv("FORMPULSE_STORE", "memory").lower(),
        data_dir=os.getenv("FORMPULSE_DATA_DIR", "./data"),
        jwt_secret=os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
        jwt_expire_minutes=int(os.getenv("JWT_EXPIRE_MINUTES", "1440")),
        allow_origin=os.getenv("ALLOW_ORIGIN", "*"),
        broadcast_timeout=float(os.getenv("BROADCAST_TIMEOUT", "5.0")),
        port=int(os.getenv("PORT", "8080")),
    )
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET not configured; using the insecure default secret.")
    logger.info("Config loaded. store=%s port=%d", settings.store, settings.port)
    return settings
