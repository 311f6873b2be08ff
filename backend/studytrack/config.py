"""Application settings and validation."""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE = Path(__file__).resolve().parent.parent

load_dotenv(BASE / ".env")


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_DAYS: int
    DATABASE_URL: str
    UPLOAD_DIR: Path
    MAX_UPLOAD_BYTES: int
    FRONTEND_URL: str
    INVITE_TTL_HOURS: int
    SMTP_HOST: str
    SMTP_PORT: int
    SMTP_USERNAME: str
    SMTP_PASSWORD: str
    SMTP_USE_TLS: bool
    SMTP_USE_SSL: bool
    FROM_EMAIL: str
    FROM_NAME: str
    RATE_LIMIT_MAX: int
    RATE_LIMIT_WINDOW_SECONDS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    HOST: str
    PORT: int
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", "7"))
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'studytrack.db'}")
        self.UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", str(BASE / "uploads"))).expanduser().resolve()
        self.MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024)))  # 5 MB default
        self.FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
        self.INVITE_TTL_HOURS = int(os.getenv("INVITE_TTL_HOURS", "24"))
        self.SMTP_HOST = os.getenv("SMTP_HOST", "")
        self.SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
        self.SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
        self.SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
        self.SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"
        self.SMTP_USE_SSL = os.getenv("SMTP_USE_SSL", "false").lower() == "true"
        self.FROM_EMAIL = os.getenv("FROM_EMAIL", "noreply@studytrack.local")
        self.FROM_NAME = os.getenv("FROM_NAME", "Personal Study System")
        self.RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "100"))
        self.RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.HOST = os.getenv("HOST", "0.0.0.0")
        self.PORT = int(os.getenv("PORT", "5000"))
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.SMTP_USE_SSL and self.SMTP_USE_TLS:
            raise RuntimeError("SMTP_USE_SSL and SMTP_USE_TLS cannot both be enabled")


settings = Settings()
