import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Giftlist API"
    frontend_url: str = "http://localhost:3000"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Database: sqlite+aiosqlite:///./giftlist.db (dev) | postgresql+asyncpg://... (prod)
    database_dsn: str = "sqlite+aiosqlite:///./giftlist.db"

    access_token_expire_minutes: int = 60 * 24 * 30
    # SECURITY: override via JWT_SECRET_KEY env var; non-local environments refuse the default
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"
    bcrypt_rounds: int = 10

    log_level: str = "INFO"
    log_file: str = ""

    def validate_secrets(self) -> None:
        """Refuse to start with insecure defaults."""
        if self.jwt_secret_key == "CHANGE_ME":
            raise RuntimeError(
                "JWT_SECRET_KEY is still the default 'CHANGE_ME'. "
                "Set a strong random secret via the JWT_SECRET_KEY environment variable."
            )
        if len(self.jwt_secret_key) < 32:
            raise RuntimeError(
                f"JWT_SECRET_KEY is too short ({len(self.jwt_secret_key)} chars). "
                "Minimum 32 characters required."
            )


settings = Settings()
