import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

class StoreSettings(BaseModel):
    retry_attempts: int = Field(default=int(os.getenv("STORE_RETRY_ATTEMPTS", "3")))
    retry_backoff_seconds: float = Field(default=float(os.getenv("STORE_RETRY_BACKOFF_SECONDS", "0.5")))
    retry_max_wait_seconds: float = Field(default=float(os.getenv("STORE_RETRY_MAX_WAIT_SECONDS", "4")))

class AuthSettings(BaseModel):
    secret_key: str = Field(default=os.getenv("SECRET_KEY", "dev-only-insecure-key-DO-NOT-USE-IN-PROD"))
    algorithm: str = Field(default=os.getenv("JWT_ALGORITHM", "HS256"))

class Config(BaseModel):
    app_name: str = "WorkFlowHR"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    version: str = "1.0.0"
    request_id_header: str = "X-Request-ID"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./workflowhr.db")
    store: StoreSettings = StoreSettings()

    # Identity tokens are issued upstream; we only verify and read them
    auth: AuthSettings = AuthSettings()

    # Ledger maintenance
    cleanup_balances_on_startup: bool = os.getenv("CLEANUP_BALANCES_ON_STARTUP", "true").lower() == "true"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://localhost:5173,"
                "http://127.0.0.1:3000,http://127.0.0.1:5173",
            ).split(",")
            if o.strip()
        ]
    )

settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.auth.secret_key:
        raise RuntimeError(
            "FATAL: SECRET_KEY must be set for non-development environments. "
            "Set it as an environment variable."
        )
elif "dev-only" in settings.auth.secret_key:
    _logger.warning("⚠ Using insecure default SECRET_KEY, only acceptable in development.")
