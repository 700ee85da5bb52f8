# wastetrack/config.py
import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
load_dotenv()

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ENV_PATH = os.path.join(PROJECT_ROOT, ".env")
load_dotenv(dotenv_path=ENV_PATH)

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")


class Settings(BaseSettings):
    # Server side
    TRUCKS_DATA_FILE: str = os.path.join(DATA_DIR, "trucks.json")
    FRONTEND_ORIGIN: str = "*"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    MAX_VIEWER_CONNECTIONS: int = 100
    VIEWER_QUEUE_SIZE: int = 100 # pending events per viewer before the oldest is dropped

    # Client side (viewer and truck reporter)
    API_BASE_URL: str = "http://localhost:8000"
    WS_RECONNECT_ATTEMPTS: int = 5
    WS_CONNECT_TIMEOUT_SECONDS: float = 10.0
    WS_RETRY_DELAY_SECONDS: float = 1.0
    REQUEST_TIMEOUT_SECONDS: float = 10.0
    REPORT_INTERVAL_SECONDS: float = 10.0
    NEARBY_RADIUS_KM: float = 5.0

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ENV_PATH # Tell Pydantic where to load .env from
        env_file_encoding = 'utf-8'
        extra = 'ignore' # Ignore extra fields from .env if any

settings = Settings()
