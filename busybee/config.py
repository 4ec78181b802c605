"""
Centralized configuration management using pydantic-settings.
This module provides a single source of truth for all busybee configuration.
"""

from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from busybee.utils.logger import setup_logger

load_dotenv(override=False)


logger = setup_logger("core_config")

DEV_SECRET_KEY = "busybee-dev-secret-change-this-in-production"


class Settings(BaseSettings):
    """
    Application settings managed by pydantic-settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
        env_prefix="",
    )

    # ===== Storage Configuration =====
    uploads_dir: Path = Field(
        default=Path("uploads"),
        alias="BUSYBEE_UPLOADS_DIR",
        description="Sandbox root under which every uploaded file is stored",
    )

    tasks_file: Path | None = Field(
        default=Path("data/tasks.json"),
        alias="BUSYBEE_TASKS_FILE",
        description="JSON snapshot of the task list; unset keeps tasks in memory only",
    )

    # ===== Upload Admission Configuration =====
    max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        alias="BUSYBEE_MAX_UPLOAD_BYTES",
        description="Largest accepted upload in bytes",
    )

    min_free_bytes: int = Field(
        default=10 * 1024 * 1024,
        alias="BUSYBEE_MIN_FREE_BYTES",
        description="Free disk space that must remain after an upload",
    )

    max_files_per_user: int = Field(
        default=50,
        alias="BUSYBEE_MAX_FILES_PER_USER",
        description="Soft cap on stored files per user directory",
    )

    max_filename_length: int = Field(
        default=80,
        alias="BUSYBEE_MAX_FILENAME_LENGTH",
        description="Longest accepted client-side filename",
    )

    upload_chunk_size: int = Field(
        default=8192,
        alias="BUSYBEE_UPLOAD_CHUNK_SIZE",
        description="Chunk size used when streaming uploads to disk",
    )

    # ===== URL Fetcher Configuration =====
    url_connect_timeout: float = Field(
        default=5.0,
        alias="BUSYBEE_URL_CONNECT_TIMEOUT",
        description="Connect timeout in seconds for remote image downloads",
    )

    url_read_timeout: float = Field(
        default=5.0,
        alias="BUSYBEE_URL_READ_TIMEOUT",
        description="Read timeout in seconds for remote image downloads",
    )

    url_user_agent: str = Field(
        default="busybee/1.0",
        alias="BUSYBEE_URL_USER_AGENT",
        description="User-Agent header sent when downloading remote images",
    )

    # ===== Session Configuration =====
    secret_key: str = Field(
        default=DEV_SECRET_KEY,
        alias="SECRET_KEY",
        description="Key used to sign session tokens",
    )

    token_algorithm: str = Field(
        default="HS256",
        alias="TOKEN_ALGORITHM",
        description="JWT signing algorithm",
    )

    access_token_expire_minutes: int = Field(
        default=8 * 60,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
        description="Session lifetime in minutes",
    )

    session_cookie_name: str = Field(
        default="BUSYBEE_SESSION",
        alias="SESSION_COOKIE_NAME",
        description="Name of the HttpOnly session cookie",
    )

    session_cookie_secure: bool = Field(
        default=False,
        alias="SESSION_COOKIE_SECURE",
        description="Send the session cookie over HTTPS only",
    )

    bcrypt_rounds: int = Field(
        default=12,
        alias="BCRYPT_ROUNDS",
        description="bcrypt work factor for password hashes",
    )

    # ===== Bootstrap Configuration =====
    seed_users: bool = Field(
        default=True,
        alias="BUSYBEE_SEED_USERS",
        description="Create the canonical accounts with random passwords on startup",
    )

    # ===== Server Configuration =====
    server_host: str = Field(
        default="0.0.0.0", alias="SERVER_HOST", description="Server host address"
    )

    server_port: int = Field(
        default=8080, alias="SERVER_PORT", description="Server port number"
    )

    # ===== CORS Configuration =====
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:8080",
            "http://127.0.0.1:8080",
        ],
        alias="CORS_ALLOW_ORIGINS",
        description="CORS allowed origins",
    )

    cors_allow_credentials: bool = Field(
        default=True,
        alias="CORS_ALLOW_CREDENTIALS",
        description="Whether to allow credentials in CORS requests",
    )

    cors_allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST"],
        alias="CORS_ALLOW_METHODS",
        description="CORS allowed methods",
    )

    cors_allow_headers: list[str] = Field(
        default_factory=lambda: ["Authorization", "Content-Type"],
        alias="CORS_ALLOW_HEADERS",
        description="CORS allowed headers",
    )

    @field_validator("tasks_file", mode="before")
    @classmethod
    def empty_tasks_file_disables_persistence(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return v

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Log warnings for configurations that are unsafe outside development."""
        if self.secret_key == DEV_SECRET_KEY:
            logger.warning("SECRET_KEY environment variable not set; using development key.")

        if not self.session_cookie_secure:
            logger.warning("SESSION_COOKIE_SECURE is off; session cookie is sent over plain HTTP.")

        if self.tasks_file is None:
            logger.warning("BUSYBEE_TASKS_FILE not set; tasks are kept in memory only.")

        logger.debug(f"Uploads directory: {self.uploads_dir}")
        return self


# Global settings instance
settings = Settings()
