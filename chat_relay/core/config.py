# chat_relay/core/config.py
import os
from typing import List
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - HOST / PORT where uvicorn binds the relay
        - CORS_ORIGINS comma separated list of allowed origins ("*" for any)
        - HISTORY_CAP how many messages a room keeps before truncating the oldest
        - HISTORY_LIMIT how many messages a joining connection receives
        - DEDUP_WINDOW_SECONDS how long an accepted message id stays a duplicate
        - DEDUP_SWEEP_INTERVAL_SECONDS how often expired dedup entries are purged
        - OUTBOUND_QUEUE_SIZE per-connection backlog before a client is dropped
        - TIMESTAMP_FORMAT strftime format of the display timestamp
        - LOG_LEVEL / LOG_FORMAT root logger level name and record format
    """

    # Load environment variables from the .env file
    load_dotenv()

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "5000"))
    CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    HISTORY_CAP: int = int(os.getenv("HISTORY_CAP", "100"))
    HISTORY_LIMIT: int = int(os.getenv("HISTORY_LIMIT", "50"))

    DEDUP_WINDOW_SECONDS: float = float(os.getenv("DEDUP_WINDOW_SECONDS", "60"))
    DEDUP_SWEEP_INTERVAL_SECONDS: float = float(os.getenv("DEDUP_SWEEP_INTERVAL_SECONDS", "10"))

    OUTBOUND_QUEUE_SIZE: int = int(os.getenv("OUTBOUND_QUEUE_SIZE", "256"))
    TIMESTAMP_FORMAT: str = os.getenv("TIMESTAMP_FORMAT", "%H:%M:%S")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "%(asctime)s | %(levelname)s | %(name)s | %(message)s")

settings = Settings()
