
from typing import Annotated, List
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

class Settings(BaseSettings):
    ENV: str = "dev"
    LOG_DIR: str = "logs"
    DATABASE_URL: str = ""        # empty => sqlite file under ./data

    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_API_KEY: str = ""      # Picker developer key; falls back to the client id
    GOOGLE_REDIRECT_BASE: str = "http://localhost:8000"
    GOOGLE_DRIVE_FOLDER_ID: str = ""

    FILESTACK_API_KEY: str = ""
    FILESTACK_BASE_URL: str = "https://www.filestackapi.com/api"
    GUMLET_API_KEY: str = ""
    GUMLET_BASE_URL: str = "https://api.gumlet.com"

    DEFAULT_PROVIDER: str = "googledrive"

    ADMIN_USERNAME: str = ""
    ADMIN_PASSWORD: str = ""
    SESSION_SECRET: str = ""
    SESSION_TTL_SECONDS: int = 60 * 60 * 12
    SESSION_COOKIE_NAME: str = "portal_session"

    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 60
    LOGIN_RATE_LIMIT_MAX_PER_IP: int = 10

    API_TIMEOUT_SECONDS: float = 20.0
    THUMBNAIL_TIMEOUT_SECONDS: float = 8.0
    DOWNLOAD_TIMEOUT_SECONDS: float = 30.0
    PICKER_READY_TIMEOUT_SECONDS: float = 15.0

    ALLOWED_REDIRECT_HOSTS: Annotated[List[str], NoDecode] = ["localhost", "127.0.0.1"]
    ENCRYPTION_KEY: str = ""

    # CORS: disabled unless configured
    CORS_ORIGINS: Annotated[List[str], NoDecode] = []

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("ALLOWED_REDIRECT_HOSTS", "CORS_ORIGINS", mode="before")
    @classmethod
    def split_csv(cls, v):
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

settings = Settings()
